"""FlowPulse command line interface."""
