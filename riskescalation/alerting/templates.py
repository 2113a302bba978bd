"""
Message templates for staff notifications, guardian emails and SMS.

Pure functions; no I/O. Everything user-supplied that ends up in HTML is
escaped.
"""

from html import escape
from typing import Optional

from riskescalation.alerting.schemas import RiskLevel

DEFAULT_ADMIN_FOLLOWUP = "Immediate attention may be required."

_RISK_COLORS = {
    RiskLevel.CRITICAL: "#a71d2a",
    RiskLevel.HIGH: "#dc3545",
    RiskLevel.MEDIUM: "#fd7e14",
    RiskLevel.LOW: "#ffc107",
}

_RISK_ICONS = {
    RiskLevel.CRITICAL: "🚨",
    RiskLevel.HIGH: "🚨",
    RiskLevel.MEDIUM: "⚠️",
    RiskLevel.LOW: "ℹ️",
}


def student_display_name(first: Optional[str], middle: Optional[str], last: Optional[str]) -> str:
    """'First Middle Last' with empty parts dropped."""
    parts = [p.strip() for p in (first, middle, last) if p and p.strip()]
    return " ".join(parts)


# ── Staff (in-app) ────────────────────────────────────────────────────────


def admin_title(student_name: str) -> str:
    return f"Student At Risk: {student_name}"


def admin_message(
    student_name: str,
    class_name: str,
    level: RiskLevel,
    reason: Optional[str],
) -> str:
    followup = reason if reason else DEFAULT_ADMIN_FOLLOWUP
    return f"{student_name} from {class_name} has been flagged as {level.label} risk. {followup}"


def admin_action_url(class_id: Optional[str]) -> Optional[str]:
    return f"/classes/{class_id}" if class_id else None


# ── Guardian descriptions ─────────────────────────────────────────────────


def default_guardian_description(level: RiskLevel) -> str:
    return f"Your child has been identified as {level.value} risk. Please contact the school."


def attendance_description(absent_days: int, period_days: int, attendance_rate: float) -> str:
    return (
        f"Attendance concerns: {absent_days} days absent in the last {period_days} days. "
        f"Current attendance rate: {attendance_rate:g}%"
    )


def performance_description(decline_reason: str, current_average: float) -> str:
    return (
        f"Academic performance concerns: Recent grades show {decline_reason}. "
        f"Current average: {current_average:g}%"
    )


# ── Email ─────────────────────────────────────────────────────────────────


def guardian_email_subject(student_name: str, school_name: str, level: RiskLevel) -> str:
    return f"{_RISK_ICONS[level]} Important: {student_name}'s Academic Alert - {school_name}"


def guardian_email_html(
    guardian_name: str,
    student_name: str,
    school_name: str,
    level: RiskLevel,
    description: str,
    brand: str,
) -> str:
    color = _RISK_COLORS[level]
    icon = _RISK_ICONS[level]
    guardian = escape(guardian_name or "Parent/Guardian")
    student = escape(student_name)
    school = escape(school_name)
    concern = escape(description)
    brand = escape(brand)
    return f"""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: {color}; padding: 30px; text-align: center; color: white;">
    <h1 style="margin: 0; font-size: 28px;">{brand} Alert</h1>
    <p style="margin: 10px 0 0 0; font-size: 16px;">{school} - Student Progress Monitoring</p>
  </div>
  <div style="padding: 40px 30px; background: #f8f9fa;">
    <h2 style="color: {color}; margin-top: 0;">{icon} Important Notice for {guardian}</h2>
    <p style="font-size: 16px; line-height: 1.6; color: #333;">
      We are writing to inform you about your child <strong>{student}</strong>'s academic progress.
      Our monitoring system has identified some concerns that require your attention.
    </p>
    <div style="background: white; padding: 20px; margin: 20px 0; border-left: 4px solid {color};">
      <h3 style="margin-top: 0; color: {color};">Risk Level: {level.value}</h3>
      <p style="color: #666; line-height: 1.8;"><strong>Concern:</strong> {concern}</p>
    </div>
    <div style="background: #e7f3ff; padding: 20px; margin: 20px 0; border-left: 4px solid #0066cc;">
      <h3 style="margin-top: 0; color: #0066cc;">What You Can Do</h3>
      <ul style="color: #666; line-height: 1.8;">
        <li>Contact your child's teacher to discuss the situation</li>
        <li>Review your child's recent academic performance</li>
        <li>Ensure regular school attendance</li>
        <li>Provide additional support at home if needed</li>
      </ul>
    </div>
  </div>
  <div style="background: #f8f9fa; padding: 20px; text-align: center; color: #666; font-size: 14px;">
    <p>This notification was sent by {school}'s {brand} system.</p>
    <p>For questions, please contact your child's school directly.</p>
  </div>
</div>
"""


def sender_display_name(school_name: str, brand: str) -> str:
    return f"{school_name} - {brand}"


# ── SMS ───────────────────────────────────────────────────────────────────


def guardian_sms_text(student_name: str, school_name: str, level: RiskLevel, brand: str) -> str:
    return (
        f"{brand} Alert: {student_name} has been flagged as {level.value} risk "
        f"at {school_name}. Please contact the school for details."
    )
