"""
HTML Email Templates
Inline-styled markup for transactional booking emails. Every interpolated
value is escaped before it reaches the markup.
"""

from typing import Optional

from .utils.sanitization import escape_fields

# Brand colors
THEME = {
    "primary": "#7c3aed",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}


def get_base_template(
    title: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base HTML wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <p style="text-align:center;padding:20px 0;">
          <a href="{cta_url}"
             style="background:{THEME['primary']};color:#ffffff;font-weight:600;
                    border-radius:8px;padding:14px 32px;text-decoration:none;">
            {cta_label}
          </a>
        </p>
        """

    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{title}</title></head>
  <body style="background:{THEME['background']};margin:0;padding:24px;
               font-family:-apple-system, 'Segoe UI', Arial, sans-serif;">
    <div style="max-width:600px;margin:0 auto;background:{THEME['card_bg']};
                border:1px solid {THEME['border']};border-radius:12px;padding:32px;">
      <h1 style="color:{THEME['text_primary']};font-size:22px;margin-top:0;">{title}</h1>
      {content_sections}
      {cta_section}
    </div>
  </body>
</html>"""


def _details_table(rows: list[tuple[str, str]]) -> str:
    cells = "".join(
        f"""<tr>
          <td style="color:{THEME['text_muted']};padding:6px 12px 6px 0;">{label}</td>
          <td style="color:{THEME['text_primary']};padding:6px 0;font-weight:600;">{value}</td>
        </tr>"""
        for label, value in rows
        if value
    )
    return f'<table style="border-collapse:collapse;margin:16px 0;">{cells}</table>'


def _paragraph(text: str) -> str:
    return f'<p style="color:{THEME["text_secondary"]};line-height:1.6;">{text}</p>'


def booking_confirmed_client_template(
    client_name: str,
    service_type: str,
    when: str,
    duration_minutes: int,
    meeting_link: Optional[str] = None,
) -> str:
    """Sent to the client when the creator confirms their booking"""
    v = escape_fields(
        client_name=client_name, service_type=service_type, when=when, meeting_link=meeting_link
    )
    content = _paragraph(f"Hi {v['client_name']}, your booking is confirmed.")
    content += _details_table(
        [
            ("Service", v["service_type"]),
            ("When", v["when"]),
            ("Duration", f"{duration_minutes} minutes"),
        ]
    )
    return get_base_template(
        "Your booking is confirmed",
        content,
        cta_url=v["meeting_link"],
        cta_label="Join meeting" if v["meeting_link"] else None,
    )


def booking_confirmed_creator_template(
    client_name: str,
    client_email: str,
    service_type: str,
    when: str,
    duration_minutes: int,
    notes: Optional[str] = None,
) -> str:
    """Sent to the creator as a record of a confirmed booking"""
    v = escape_fields(
        client_name=client_name,
        client_email=client_email,
        service_type=service_type,
        when=when,
        notes=notes,
    )
    content = _paragraph(f"You confirmed a {v['service_type']} with {v['client_name']}.")
    content += _details_table(
        [
            ("Client", v["client_name"]),
            ("Email", v["client_email"]),
            ("When", v["when"]),
            ("Duration", f"{duration_minutes} minutes"),
            ("Notes", v["notes"]),
        ]
    )
    return get_base_template("Booking confirmed", content)


def payment_received_client_template(
    client_name: str,
    service_type: str,
    when: str,
    amount: float,
) -> str:
    v = escape_fields(client_name=client_name, service_type=service_type, when=when)
    content = _paragraph(f"Thanks {v['client_name']}, we received your payment.")
    content += _details_table(
        [
            ("Service", v["service_type"]),
            ("When", v["when"]),
            ("Amount", f"${amount:,.2f}"),
        ]
    )
    return get_base_template("Payment received", content)


def payment_received_creator_template(
    client_name: str,
    service_type: str,
    when: str,
    amount: float,
) -> str:
    v = escape_fields(client_name=client_name, service_type=service_type, when=when)
    content = _paragraph(f"{v['client_name']} paid for their {v['service_type']}.")
    content += _details_table([("When", v["when"]), ("Amount", f"${amount:,.2f}")])
    return get_base_template("New booking payment", content)


def meeting_link_template(
    client_name: str,
    service_type: str,
    when: str,
    meeting_link: str,
    note: Optional[str] = None,
) -> str:
    """Meeting link sent to the client ahead of a session"""
    v = escape_fields(
        client_name=client_name,
        service_type=service_type,
        when=when,
        meeting_link=meeting_link,
        note=note,
    )
    content = _paragraph(f"Hi {v['client_name']}, here is the link for your upcoming {v['service_type']}.")
    content += _details_table([("When", v["when"]), ("Link", v["meeting_link"])])
    if v["note"]:
        content += _paragraph(v["note"])
    return get_base_template(
        "Your meeting link",
        content,
        cta_url=v["meeting_link"],
        cta_label="Join meeting",
    )
