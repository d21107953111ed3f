"""CVE and exploit intelligence."""
