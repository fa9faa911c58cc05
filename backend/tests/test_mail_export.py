from datetime import date
from urllib.parse import unquote

from icc_checker.services.audit_session import AuditSummary, ItemStatus, SummaryLine
from icc_checker.services.checklist import ChecklistItemDefinition
from icc_checker.services.mail_export import build_summary_mail


def _summary(overall_comment: str | None = None) -> AuditSummary:
    caisse = ChecklistItemDefinition(id="a", title="Caisse", description="x", icon="💶")
    coffre = ChecklistItemDefinition(id="b", title="Coffre", description="x")
    return AuditSummary(
        store_name="Acme",
        verifier_name="Alice",
        audit_date=date(2024, 3, 1),
        period_covered="du 23/02/2024 au 29/02/2024",
        completion=100,
        all_ok=False,
        message="Erreurs ou manquements détectés",
        overall_comment=overall_comment,
        lines=[
            SummaryLine(item=caisse, status=ItemStatus.compliant, comment=""),
            SummaryLine(item=coffre, status=ItemStatus.non_compliant, comment="Écart de 20€"),
        ],
    )


def test_mail_body_lists_every_item() -> None:
    draft = build_summary_mail(_summary("À revoir"), recipient="controle@example.com")

    assert draft.subject == "Checklist ICC - Acme - 01/03/2024"
    lines = draft.body.splitlines()
    assert lines[0] == "Vérification ICC pour Acme"
    assert "Période vérifiée : du 23/02/2024 au 29/02/2024" in lines
    assert "Checklist complétée à 100%" in lines
    assert "- 💶 Caisse : OK" in lines
    assert "- 📌 Coffre : Non conf." in lines
    assert "  Commentaire : Écart de 20€" in lines
    assert "Commentaire général : À revoir" in lines


def test_mailto_url_is_fully_encoded() -> None:
    draft = build_summary_mail(_summary())

    assert draft.mailto_url.startswith("mailto:?subject=")
    assert " " not in draft.mailto_url
    assert "Commentaire général" not in unquote(draft.mailto_url)
    assert unquote(draft.mailto_url.split("body=", 1)[1]) == draft.body
