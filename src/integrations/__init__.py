"""
Outbound integrations for the spill relay (notification sinks).
"""
