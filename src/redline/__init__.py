"""Document editor agent core: tool orchestration and tracked-change review."""
