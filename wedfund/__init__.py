"""Wedding fundraising backend."""
