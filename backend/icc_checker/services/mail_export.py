from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape

from icc_checker.services.audit_session import AuditSummary, format_display_date

TEMPLATE_PATH = Path(__file__).parent.parent / "templates" / "mail"
env = Environment(
    loader=FileSystemLoader(TEMPLATE_PATH),
    autoescape=select_autoescape(["html", "xml"]),
)


@dataclass(frozen=True)
class MailDraft:
    recipient: str
    subject: str
    body: str

    @property
    def mailto_url(self) -> str:
        return f"mailto:{quote(self.recipient)}?subject={quote(self.subject)}&body={quote(self.body)}"


def render_summary(summary: AuditSummary) -> tuple[str, str]:
    context = {
        "store_name": summary.store_name,
        "verifier_name": summary.verifier_name,
        "audit_date": format_display_date(summary.audit_date) if summary.audit_date else "",
        "period_covered": summary.period_covered,
        "completion": summary.completion,
        "message": summary.message,
        "lines": summary.lines,
        "overall_comment": summary.overall_comment,
    }
    subject = env.get_template("audit_summary_subject.txt.j2").render(**context).strip()
    body = env.get_template("audit_summary.txt.j2").render(**context).strip() + "\n"
    return subject, body


def build_summary_mail(summary: AuditSummary, recipient: str = "") -> MailDraft:
    subject, body = render_summary(summary)
    return MailDraft(recipient=recipient, subject=subject, body=body)
