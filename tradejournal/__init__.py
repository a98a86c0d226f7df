"""Trade journal core: challenges, trades, rollups and optimistic sync."""
