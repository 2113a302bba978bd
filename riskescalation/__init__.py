"""
Risk Escalation & Notification Pipeline.

Turns an upstream "student at risk" signal into:
- one deduplicated in-app notification for school staff
- email + SMS alerts for each reachable guardian

Architecture:
  RiskEvent → BatchCoordinator → AdminEscalator   → DeduplicationStore → DB
                               → GuardianEscalator → GuardianResolver
                                                   → EmailGateway / SmsGateway
"""

__version__ = "1.0.0"
