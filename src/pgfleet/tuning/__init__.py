"""pgtune engine and postgresql.auto.conf maintenance."""
