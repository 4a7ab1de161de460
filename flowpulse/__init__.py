"""
FlowPulse

Heartbeat monitoring for workflow automations (N8N, Make, Zapier).
Workflows ping a capability URL; FlowPulse tracks liveness, records
every run, and alerts owners by email and Slack when a workflow fails.
"""

__version__ = "0.1.0"
