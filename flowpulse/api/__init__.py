"""FlowPulse HTTP API."""
