from __future__ import annotations

import html

from ..core.config import settings

STATUS_LABELS = {
    "open": "Open",
    "in_progress": "In progress",
    "resolved": "Resolved",
    "closed": "Closed",
}

PRIORITY_LABELS = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "urgent": "Urgent",
}


def status_label(status: str | None) -> str:
    if not status:
        return "-"
    return STATUS_LABELS.get(status.lower(), status)


def priority_label(priority: str | None) -> str:
    if not priority:
        return PRIORITY_LABELS["medium"]
    return PRIORITY_LABELS.get(priority.lower(), priority)


def ticket_link(ticket_id: str) -> str:
    base = settings.app_base_url.rstrip("/")
    return f"{base}/tickets/{ticket_id}"


def _esc(value: str | None) -> str:
    return html.escape(value or "-")


def _badge(label: str, bg: str, fg: str, border: str) -> str:
    return (
        f"<span style=\"display:inline-block;padding:4px 10px;border-radius:999px;"
        f"background:{bg};color:{fg};border:1px solid {border};font-size:12px;font-weight:600;\">"
        f"{_esc(label)}"
        "</span>"
    )


def _status_badge(label: str) -> str:
    styles = {
        STATUS_LABELS["open"]: ("#fee2e2", "#b91c1c", "#fecaca"),
        STATUS_LABELS["in_progress"]: ("#dbeafe", "#1d4ed8", "#bfdbfe"),
        STATUS_LABELS["resolved"]: ("#dcfce7", "#166534", "#bbf7d0"),
        STATUS_LABELS["closed"]: ("#f3f4f6", "#374151", "#e5e7eb"),
    }
    bg, fg, border = styles.get(label, ("#f3f4f6", "#374151", "#e5e7eb"))
    return _badge(label, bg, fg, border)


def _priority_badge(label: str) -> str:
    styles = {
        PRIORITY_LABELS["urgent"]: ("#fee2e2", "#b91c1c", "#fecaca"),
        PRIORITY_LABELS["high"]: ("#ffedd5", "#c2410c", "#fed7aa"),
        PRIORITY_LABELS["medium"]: ("#dbeafe", "#1d4ed8", "#bfdbfe"),
        PRIORITY_LABELS["low"]: ("#e5e7eb", "#374151", "#d1d5db"),
    }
    bg, fg, border = styles.get(label, ("#f3f4f6", "#374151", "#e5e7eb"))
    return _badge(label, bg, fg, border)


def render_plain(
    *,
    company_name: str,
    alert_type: str,
    summary: str,
    fields: list[tuple[str, str]],
    status: str,
    priority: str,
    link_url: str,
) -> str:
    lines: list[str] = []
    lines.append(f"{company_name} | {alert_type}")
    lines.append("")
    lines.append(summary)
    lines.append("")
    for label, value in fields:
        lines.append(f"- {label}: {value}")
    lines.append(f"- Status: {status}")
    lines.append(f"- Priority: {priority}")
    lines.append("")
    lines.append(f"View ticket: {link_url}")
    lines.append("")
    lines.append(f"This is an automatic message from the {company_name} ticket system.")
    return "\n".join(lines)


def render_html(
    *,
    company_name: str,
    alert_type: str,
    summary: str,
    fields: list[tuple[str, str]],
    status: str,
    priority: str,
    link_url: str,
) -> str:
    rows = "".join(
        f"""
        <tr>
          <td style=\"padding:8px 0;color:#6b7280;font-size:13px;width:140px;\">{_esc(label)}</td>
          <td style=\"padding:8px 0;color:#111827;font-size:14px;font-weight:600;\">{_esc(value)}</td>
        </tr>
        """
        for label, value in fields
    )

    return f"""
<!DOCTYPE html>
<html lang=\"en\">
  <body style=\"margin:0;padding:24px;background:#ffffff;font-family:Arial,sans-serif;\">
    <table role=\"presentation\" width=\"600\" cellspacing=\"0\" cellpadding=\"0\" style=\"width:600px;margin:0 auto;border:1px solid #e5e7eb;border-radius:12px;\">
      <tr>
        <td style=\"padding:20px 24px;border-bottom:1px solid #e5e7eb;\">
          <div style=\"font-size:12px;color:#6b7280;font-weight:600;\">{_esc(company_name)} | {_esc(alert_type)}</div>
          <div style=\"margin-top:6px;font-size:20px;font-weight:700;color:#111827;\">{_esc(summary)}</div>
        </td>
      </tr>
      <tr>
        <td style=\"padding:20px 24px;\">
          {_status_badge(status)}
          <span style=\"display:inline-block;width:8px;\"></span>
          {_priority_badge(priority)}
          <table role=\"presentation\" width=\"100%\" cellspacing=\"0\" cellpadding=\"0\" style=\"margin-top:16px;border-collapse:collapse;\">
            {rows}
          </table>
          <div style=\"margin-top:18px;\">
            <a href=\"{_esc(link_url)}\" style=\"display:inline-block;padding:12px 20px;background:#2563eb;color:#ffffff;text-decoration:none;border-radius:6px;font-weight:700;font-size:14px;\">View ticket</a>
          </div>
        </td>
      </tr>
      <tr>
        <td style=\"padding:16px 24px;border-top:1px solid #e5e7eb;font-size:12px;color:#6b7280;\">
          This is an automatic message from the {_esc(company_name)} ticket system.
        </td>
      </tr>
    </table>
  </body>
</html>
    """.strip()


def render(**kwargs) -> tuple[str, str]:
    return render_plain(**kwargs), render_html(**kwargs)
