# Stake Engine Configuration
# Kelly Criterion parameters for position sizing

# Fractional Kelly (reduces variance at cost of growth)
FRACTIONAL_KELLY = 0.25  # Use 25% of Kelly-optimal stake

# Monetary granularity: stakes are truncated to 1/MONEY_QUANTUM (cents)
MONEY_QUANTUM = 100
