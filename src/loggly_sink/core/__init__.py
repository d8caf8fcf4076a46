"""Building blocks shared by the Loggly sink: entries, encoding, buffering."""
