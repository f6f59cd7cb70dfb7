"""
kanzlei_services.reports -- printable HTML reports.

Renders the Buchhaltungsreport that accompanies a one-click export and the
Kassenabschluss of a day.  Every interpolated value goes through
``html.escape``; the documents are A4 print layouts in German, matching
the export files they accompany.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from html import escape

from kanzlei_kernel.domain.dtos import OrganizationProfile
from kanzlei_kernel.domain.values import round_money

_BASE_STYLE = """\
    @page { size: A4; margin: 18mm; }
    body { font-family: "Helvetica Neue", Arial, sans-serif; color: #0f172a; font-size: 12px; }
    h1 { font-size: 20px; margin: 0 0 8px 0; }
    h2 { font-size: 14px; margin: 16px 0 8px 0; }
    .box { border: 1px solid #cbd5e1; border-radius: 8px; padding: 10px; margin-top: 8px; }
    .muted { color: #475569; }
    table { width: 100%; border-collapse: collapse; margin-top: 8px; }
    th, td { border: 1px solid #cbd5e1; padding: 8px; text-align: left; }
    th { background: #f8fafc; }"""


def _e(value: object) -> str:
    return escape("" if value is None else str(value))


def _eur(value: Decimal) -> str:
    return f"{round_money(value):f} EUR"


def _de_date(day: date) -> str:
    return day.strftime("%d.%m.%Y")


def _tax_identity(profile: OrganizationProfile | None) -> str:
    if profile is None:
        return "-"
    return profile.value_of("tax_number") or profile.value_of("vat_id") or "-"


def _list_section(title: str, items: Sequence[str]) -> str:
    if not items:
        return ""
    rows = "".join(f"<li>{_e(item)}</li>" for item in items)
    return f"<h2>{_e(title)}</h2><ul>{rows}</ul>"


def _document(title: str, body: str) -> str:
    return (
        "<!doctype html>\n"
        '<html lang="de">\n'
        "<head>\n"
        '  <meta charset="utf-8" />\n'
        f"  <title>{_e(title)}</title>\n"
        f"  <style>\n{_BASE_STYLE}\n  </style>\n"
        "</head>\n"
        "<body>\n"
        f"{body}\n"
        "</body>\n"
        "</html>"
    )


def accounting_report_file_name(provider: str, period_from: str, period_to: str) -> str:
    return f"Buchhaltungsreport-{provider.upper()}-{period_from}-{period_to}.html"


def render_accounting_report(
    *,
    jurisdiction: str,
    provider: str,
    profile: OrganizationProfile,
    file_name: str | None,
    period_from: str,
    period_to: str,
    record_count: int,
    total_net: Decimal,
    total_gross: Decimal,
    warnings: Sequence[str] = (),
    rule_violations: Sequence[str] = (),
    generated_on: date,
    matter_label: str | None = None,
    client_labels: Sequence[str] = (),
) -> str:
    """The Buchhaltungsreport handed to the tax adviser with the export file."""
    clients = ", ".join(client_labels) if client_labels else "Nicht zugeordnet"
    body = f"""\
  <h1>Buchhaltungs-Exportreport</h1>
  <div class="muted">Erstellt am {_e(_de_date(generated_on))} · Jurisdiktion {_e(jurisdiction)} · Provider {_e(provider.upper())}</div>

  <div class="box">
    <strong>{_e(profile.name)}</strong><br />
    {_e(profile.address or "-")}<br />
    Steuer: {_e(_tax_identity(profile))}
  </div>

  <h2>Mandatsbezug</h2>
  <div class="box">
    Akte: {_e(matter_label or "Alle Akten")}<br />
    Mandant(en): {_e(clients)}
  </div>

  <h2>Exportkennzahlen</h2>
  <table>
    <tr><th>Datei</th><td>{_e(file_name or "-")}</td></tr>
    <tr><th>Zeitraum</th><td>{_e(period_from)} bis {_e(period_to)}</td></tr>
    <tr><th>Buchungen</th><td>{record_count}</td></tr>
    <tr><th>Netto</th><td>{_e(_eur(total_net))}</td></tr>
    <tr><th>Brutto</th><td>{_e(_eur(total_gross))}</td></tr>
  </table>

  {_list_section("Hinweise", warnings)}
  {_list_section("Regelverletzungen", rule_violations)}"""
    return _document(f"Buchhaltungsreport {file_name or ''}".strip(), body)


def daily_closure_file_name(closure_date: date) -> str:
    return f"Kassenabschluss-{closure_date.isoformat()}.html"


def render_daily_closure(
    *,
    closure_date: date,
    jurisdiction: str,
    profile: OrganizationProfile | None,
    beleg_count: int,
    storno_count: int,
    cash_inflow: Decimal,
    storno_amount: Decimal,
    signature_count: int,
    chain_consistent: bool,
) -> str:
    """The Kassenabschluss of one day; a failed chain check is printed, not hidden."""
    name = profile.name if profile is not None and profile.name else "Kanzlei"
    body = f"""\
  <h1>Kassenabschluss / Daily Closure</h1>
  <div>Datum: {_e(closure_date.isoformat())} · Jurisdiktion: {_e(jurisdiction)}</div>
  <div class="box">
    <strong>{_e(name)}</strong><br />
    Steuer: {_e(_tax_identity(profile))}
  </div>
  <table>
    <tr><th>Kassenbelege gesamt</th><td>{beleg_count}</td></tr>
    <tr><th>Barumsatz aktiv</th><td>{_e(_eur(cash_inflow))}</td></tr>
    <tr><th>Stornos</th><td>{storno_count}</td></tr>
    <tr><th>Storno-Betrag</th><td>{_e(_eur(storno_amount))}</td></tr>
    <tr><th>Fiskal-Signaturen</th><td>{signature_count}</td></tr>
    <tr><th>Chain-Integrität</th><td>{"OK" if chain_consistent else "FEHLER"}</td></tr>
  </table>"""
    return _document(f"Kassenabschluss {closure_date.isoformat()}", body)
