# Services Configuration
# Scheduling and timeout parameters for background oracle work

# Live agent: seconds between viewport scans
SCAN_INTERVAL_SECONDS = 10.0

# Live agent: delay before the first scan after arming
FIRST_SCAN_DELAY_SECONDS = 2.0

# Upper bound for a single settlement lookup
SETTLEMENT_TIMEOUT_SECONDS = 30.0

# Agent log entries kept in memory (newest first)
AGENT_LOG_LIMIT = 50
