# kontor/services/xml_generator.py
# ZUGFeRD / Factur-X (CII, Profil EN16931) für Rechnungen
from lxml import etree

from kontor.models.document import Company, Customer, DocumentData, DocumentType
from kontor.services.totals import VAT_RATE, round_money

NAMESPACES = {
    "rsm": "urn:un:unece:uncefact:data:standard:CrossIndustryInvoice:100",
    "ram": "urn:un:unece:uncefact:data:standard:ReusableAggregateBusinessInformationEntity:100",
    "udt": "urn:un:unece:uncefact:data:standard:UnqualifiedDataType:100",
    "xsi": "http://www.w3.org/2001/XMLSchema-instance",
}

GUIDELINE_ID = "urn:cen.eu:en16931:2017"
INVOICE_TYPE_CODE = "380"
CURRENCY = "EUR"
UNIT_CODE = "C62"
EXEMPTION_REASON = "Kein Ausweis von Umsatzsteuer, da Kleinunternehmer gemäß § 19 UStG"
EXEMPTION_REASON_CODE = "VATEX-EU-132"

COUNTRY_CODES = {
    "deutschland": "DE",
    "germany": "DE",
    "österreich": "AT",
    "austria": "AT",
    "schweiz": "CH",
    "switzerland": "CH",
    "frankreich": "FR",
    "niederlande": "NL",
    "belgien": "BE",
    "luxemburg": "LU",
    "italien": "IT",
    "spanien": "ES",
    "polen": "PL",
    "dänemark": "DK",
    "tschechien": "CZ",
}


def _e(parent, tag, text=None, ns="ram", **attribs):
    elem = etree.SubElement(parent, f"{{{NAMESPACES[ns]}}}{tag}", **attribs)
    if text is not None:
        elem.text = str(text)
    return elem


def _fmt(value):
    return str(round_money(value))


def _add_date(parent, tag, value):
    container = etree.SubElement(parent, f"{{{NAMESPACES['ram']}}}{tag}")
    dts = etree.SubElement(container, f"{{{NAMESPACES['udt']}}}DateTimeString", format="102")
    dts.text = value.strftime("%Y%m%d")
    return container


def country_code(country: str) -> str:
    name = (country or "").strip()
    if not name:
        return "DE"
    if len(name) == 2 and name.isalpha():
        return name.upper()
    try:
        return COUNTRY_CODES[name.lower()]
    except KeyError:
        raise ValueError(f"Unbekanntes Land für E-Rechnung : {country}")


def _category(document: DocumentData):
    """(Kategorie, Steuersatz in %) für alle Positionen des Dokuments."""
    if document.is_small_business:
        return "E", "0.00"
    return "S", _fmt(VAT_RATE * 100)


def generate_xml(document: DocumentData) -> bytes:
    if document.type != DocumentType.INVOICE:
        raise ValueError(f"E-Rechnung nur für Rechnungen möglich, nicht für {document.type.value}")
    if not document.line_items:
        raise ValueError("E-Rechnung benötigt mindestens eine Position")

    root = etree.Element(f"{{{NAMESPACES['rsm']}}}CrossIndustryInvoice", nsmap=NAMESPACES)

    ctx = _e(root, "ExchangedDocumentContext", ns="rsm")
    gm = _e(ctx, "GuidelineSpecifiedDocumentContextParameter")
    _e(gm, "ID", GUIDELINE_ID)

    doc = _e(root, "ExchangedDocument", ns="rsm")
    _e(doc, "ID", document.document_number)
    _e(doc, "TypeCode", INVOICE_TYPE_CODE)
    _add_date(doc, "IssueDateTime", document.date)
    if document.notes.strip():
        note = _e(doc, "IncludedNote")
        _e(note, "Content", document.notes.strip())

    tx = _e(root, "SupplyChainTradeTransaction", ns="rsm")

    category, rate = _category(document)
    for item in document.line_items:
        _build_line(tx, item, category, rate)

    agreement = _e(tx, "ApplicableHeaderTradeAgreement")
    _build_seller(agreement, document.company)
    _build_buyer(agreement, document.customer)

    _e(tx, "ApplicableHeaderTradeDelivery")

    settlement = _e(tx, "ApplicableHeaderTradeSettlement")
    _e(settlement, "InvoiceCurrencyCode", CURRENCY)

    if document.company.iban:
        pm = _e(settlement, "SpecifiedTradeSettlementPaymentMeans")
        _e(pm, "TypeCode", "58")
        acc = _e(pm, "PayeePartyCreditorFinancialAccount")
        _e(acc, "IBANID", document.company.iban.replace(" ", ""))
        if document.company.bic:
            inst = _e(pm, "PayeeSpecifiedCreditorFinancialInstitution")
            _e(inst, "BICID", document.company.bic.replace(" ", ""))

    _build_vat_breakdown(settlement, document, category, rate)

    if document.due_date:
        terms = _e(settlement, "SpecifiedTradePaymentTerms")
        _add_date(terms, "DueDateDateTime", document.due_date)

    _build_totals(settlement, document)

    return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def _build_address(parent, postal_code, street, city, country):
    addr = _e(parent, "PostalTradeAddress")
    if postal_code:
        _e(addr, "PostcodeCode", postal_code)
    if street:
        _e(addr, "LineOne", street)
    if city:
        _e(addr, "CityName", city)
    _e(addr, "CountryID", country_code(country))


def _build_seller(parent, company: Company):
    p = _e(parent, "SellerTradeParty")
    _e(p, "Name", company.name)
    _build_address(p, company.postal_code, company.address, company.city, company.country)
    if company.email:
        uri = _e(p, "URIUniversalCommunication")
        _e(uri, "URIID", company.email, schemeID="EM")
    if company.vat_id:
        tax_reg = _e(p, "SpecifiedTaxRegistration")
        _e(tax_reg, "ID", company.vat_id, schemeID="VA")
    if company.tax_id:
        tax_reg = _e(p, "SpecifiedTaxRegistration")
        _e(tax_reg, "ID", company.tax_id, schemeID="FC")


def _build_buyer(parent, customer: Customer):
    p = _e(parent, "BuyerTradeParty")
    _e(p, "Name", customer.name)
    _build_address(p, customer.postal_code, customer.address, customer.city, customer.country)


def _build_line(parent, item, category, rate):
    li = _e(parent, "IncludedSupplyChainTradeLineItem")
    doc = _e(li, "AssociatedDocumentLineDocument")
    _e(doc, "LineID", item.position)
    product = _e(li, "SpecifiedTradeProduct")
    _e(product, "Name", item.description or f"Position {item.position}")
    agreement = _e(li, "SpecifiedLineTradeAgreement")
    net = _e(agreement, "NetPriceProductTradePrice")
    _e(net, "ChargeAmount", f"{item.unit_price:f}")
    delivery = _e(li, "SpecifiedLineTradeDelivery")
    _e(delivery, "BilledQuantity", f"{item.quantity:f}", unitCode=UNIT_CODE)
    settlement = _e(li, "SpecifiedLineTradeSettlement")
    tax = _e(settlement, "ApplicableTradeTax")
    _e(tax, "TypeCode", "VAT")
    _e(tax, "CategoryCode", category)
    _e(tax, "RateApplicablePercent", rate)
    sum_elem = _e(settlement, "SpecifiedTradeSettlementLineMonetarySummation")
    _e(sum_elem, "LineTotalAmount", _fmt(item.total))


def _build_vat_breakdown(parent, document: DocumentData, category, rate):
    # Alle Positionen haben dieselbe steuerliche Behandlung: genau eine Aufschlüsselung
    tax = _e(parent, "ApplicableTradeTax")
    _e(tax, "CalculatedAmount", _fmt(document.vat_amount))
    _e(tax, "TypeCode", "VAT")
    if category == "E":
        _e(tax, "ExemptionReason", EXEMPTION_REASON)
    _e(tax, "BasisAmount", _fmt(document.subtotal))
    _e(tax, "CategoryCode", category)
    if category == "E":
        _e(tax, "ExemptionReasonCode", EXEMPTION_REASON_CODE)
    _e(tax, "RateApplicablePercent", rate)


def _build_totals(parent, document: DocumentData):
    sums = _e(parent, "SpecifiedTradeSettlementHeaderMonetarySummation")
    _e(sums, "LineTotalAmount",     _fmt(document.subtotal))
    _e(sums, "TaxBasisTotalAmount", _fmt(document.subtotal))
    _e(sums, "TaxTotalAmount",      _fmt(document.vat_amount), currencyID=CURRENCY)
    _e(sums, "GrandTotalAmount",    _fmt(document.total))
    _e(sums, "DuePayableAmount",    _fmt(document.total))
