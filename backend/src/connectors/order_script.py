"""
Order transaction script for the JTL-Wawi sales order schema

Holds the parameterized statements of the order transaction and the builder
that turns a validated order request plus the local customer into the typed
values those statements are executed with. Nothing here talks to a database;
execution lives in order_service.

Statement order inside the transaction:
    1. (re)create the session temp table #ArticleList
    2. batched insert of the article list
    3. order header insert, returning the new kAuftrag
    4. billing (nTyp 1) and shipping (nTyp 0) address inserts
    5. one joined query resolving article number, name and tax data per line
    6. position inserts in sequence order
    7. totals recalculation via Verkauf.spAuftragEckdatenBerechnen
    8. temp table drop and final read-back of kAuftrag / cAuftragsNr
"""

import logging
import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional, Tuple

from sqlalchemy import text

from config import settings
from .schemas import CustomerSnapshot, ErpOrderDefaults, OrderInput, OrderLineItem


logger = logging.getLogger(__name__)

# DECIMAL(25,13) on the ERP side
DECIMAL_QUANTUM = Decimal("1E-13")

DEFAULT_COUNTRY = "Deutschland"
DEFAULT_COUNTRY_ISO = "DE"

BILLING_ADDRESS_TYPE = 1
SHIPPING_ADDRESS_TYPE = 0


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

DROP_ARTICLE_LIST_SQL = text("DROP TABLE IF EXISTS #ArticleList")

CREATE_ARTICLE_LIST_SQL = text(
    "CREATE TABLE #ArticleList ("
    "kArtikel INT NOT NULL, "
    "fAnzahl DECIMAL(25,13) NOT NULL, "
    "fPreisNetto DECIMAL(25,13) NOT NULL, "
    "nReihenfolge INT NOT NULL PRIMARY KEY)"
)

INSERT_ARTICLE_LIST_SQL = text(
    "INSERT INTO #ArticleList (kArtikel, fAnzahl, fPreisNetto, nReihenfolge) "
    "VALUES (:erp_article_id, :quantity, :unit_price_net, :sequence_number)"
)

# OUTPUT INSERTED cannot be used: Verkauf.tAuftrag carries triggers
INSERT_ORDER_HEADER_SQL = text("""
SET NOCOUNT ON;
INSERT INTO Verkauf.tAuftrag (
    kBenutzer, kKunde, cAuftragsNr, nType, dErstellt, dErstelltWawi,
    kShop, kPlattform, kSprache, cWaehrung, fFaktor, kFirmaHistory, kWarenlager,
    kZahlungsart, kVersandart, cVersandlandISO,
    nBeschreibung, cInet, nSteuereinstellung,
    cVersandlandWaehrung, fVersandlandWaehrungFaktor,
    nHatUpload, fZusatzGewicht, nStorno, nKomplettAusgeliefert,
    nLieferPrioritaet, nPremiumVersand, nIstExterneRechnung, nIstReadOnly,
    nArchiv, nReserviert, nAuftragStatus, fFinanzierungskosten,
    nPending, kBenutzerErstellt, nSteuersonderbehandlung
) VALUES (
    :erp_user_id, :erp_customer_id, :order_number, 1, GETDATE(), GETDATE(),
    :shop_id, :platform_id, :language_id, :currency, :currency_factor, :legal_entity_id, :warehouse_id,
    :payment_method_id, :shipping_method_id, :shipping_country_iso,
    0, '0', 0,
    :currency, :currency_factor,
    0, 0.0, 0, 0,
    0, 0, 0, 0,
    0, 0, 0, 0.0,
    0, :erp_user_id, 0
);
SELECT CAST(SCOPE_IDENTITY() AS INT) AS kAuftrag;
""")

INSERT_ORDER_ADDRESS_SQL = text("""
INSERT INTO Verkauf.tAuftragAdresse (
    kAuftrag, kKunde, nTyp, cFirma, cAnrede, cTitel, cVorname, cName,
    cStrasse, cPLZ, cOrt, cLand, cISO, cTel, cMail, cZusatz
) VALUES (
    :order_id, :erp_customer_id, :address_type, :company, :salutation, :title, :first_name, :last_name,
    :street, :zip_code, :city, :country, :country_iso, :phone, :email, :supplement
)
""")

SELECT_ARTICLE_METADATA_SQL = text("""
SELECT
    al.nReihenfolge AS sequence_number,
    al.kArtikel AS erp_article_id,
    a.kArtikel AS found_article_id,
    a.cArtNr AS article_number,
    ISNULL(ab.cName, a.cArtNr) AS name,
    a.kSteuerklasse AS tax_class_id,
    ISNULL(tax.fSteuersatz, 0) AS tax_rate
FROM #ArticleList al
LEFT JOIN dbo.tArtikel a ON a.kArtikel = al.kArtikel
LEFT JOIN dbo.tArtikelBeschreibung ab
    ON ab.kArtikel = a.kArtikel AND ab.kSprache = :language_id AND ab.kPlattform = :platform_id
OUTER APPLY (
    SELECT TOP 1 ts.fSteuersatz
    FROM dbo.tSteuersatz ts
    WHERE ts.kSteuerklasse = a.kSteuerklasse AND ts.kSteuerzone = :tax_zone_id
    ORDER BY ts.nPrio DESC, ts.kSteuersatz DESC
) tax
ORDER BY al.nReihenfolge
""")

INSERT_ORDER_POSITION_SQL = text("""
INSERT INTO Verkauf.tAuftragPosition (
    kArtikel, kAuftrag, cArtNr, cName, fAnzahl, fVkNetto, fMwSt, nSort, kSteuerklasse, nType, cEinheit,
    fEkNetto, fRabatt, cNameStandard, cHinweis
) VALUES (
    :erp_article_id, :order_id, :article_number, :name, :quantity, :unit_price_net, :tax_rate, :sequence_number,
    :tax_class_id, 1, N'', 0, 0, :name, N''
)
""")

RECALCULATE_ORDER_TOTALS_SQL = text("""
SET NOCOUNT ON;
DECLARE @orders Verkauf.TYPE_spAuftragEckdatenBerechnen;
INSERT INTO @orders (kAuftrag) VALUES (:order_id);
EXEC Verkauf.spAuftragEckdatenBerechnen @auftrag = @orders;
""")

SELECT_CREATED_ORDER_SQL = text(
    "SELECT kAuftrag, cAuftragsNr FROM Verkauf.tAuftrag WHERE kAuftrag = :order_id"
)


# ---------------------------------------------------------------------------
# Typed values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArticleListEntry:
    """One validated order line as written to #ArticleList"""
    erp_article_id: int
    quantity: Decimal
    unit_price_net: Decimal
    sequence_number: int

    def as_params(self) -> dict:
        return {
            "erp_article_id": self.erp_article_id,
            "quantity": self.quantity,
            "unit_price_net": self.unit_price_net,
            "sequence_number": self.sequence_number,
        }


@dataclass(frozen=True)
class ArticleMetadata:
    """ERP master data of one ordered article"""
    erp_article_id: int
    article_number: Optional[str]
    name: Optional[str]
    tax_class_id: Optional[int]
    tax_rate: Decimal


@dataclass(frozen=True)
class OrderAddress:
    address_type: int
    company: Optional[str]
    salutation: Optional[str]
    title: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]
    street: Optional[str]
    zip_code: Optional[str]
    city: Optional[str]
    country: str
    country_iso: str
    phone: Optional[str]
    email: Optional[str]
    supplement: Optional[str] = None

    def as_params(self, order_id: int, erp_customer_id: int) -> dict:
        return {
            "order_id": order_id,
            "erp_customer_id": erp_customer_id,
            "address_type": self.address_type,
            "company": self.company,
            "salutation": self.salutation,
            "title": self.title,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "street": self.street,
            "zip_code": self.zip_code,
            "city": self.city,
            "country": self.country,
            "country_iso": self.country_iso,
            "phone": self.phone,
            "email": self.email,
            "supplement": self.supplement,
        }


@dataclass
class OrderScript:
    """
    Everything the executor needs to run one order transaction.

    Attributes:
        order_number: cAuftragsNr of the new order
        erp_customer_id: kKunde the order is placed for
        header: Bind parameters of the header insert
        billing_address: Address with nTyp 1
        shipping_address: Address with nTyp 0
        articles: Article list in sequence order
        metadata_params: Bind parameters of the article metadata query
    """
    order_number: str
    erp_customer_id: int
    header: dict
    billing_address: OrderAddress
    shipping_address: OrderAddress
    articles: List[ArticleListEntry] = field(default_factory=list)
    metadata_params: dict = field(default_factory=dict)

    @property
    def addresses(self) -> Tuple[OrderAddress, OrderAddress]:
        return (self.billing_address, self.shipping_address)

    def article_list_params(self) -> List[dict]:
        return [article.as_params() for article in self.articles]

    def address_params(self, order_id: int) -> List[dict]:
        return [address.as_params(order_id, self.erp_customer_id) for address in self.addresses]

    def position_params(self, order_id: int, metadata: dict) -> List[dict]:
        """
        Bind parameters of the position inserts, in sequence order.

        Args:
            order_id: kAuftrag of the new order
            metadata: ArticleMetadata keyed by sequence number
        """
        positions = []
        for article in sorted(self.articles, key=lambda a: a.sequence_number):
            meta = metadata[article.sequence_number]
            positions.append({
                "order_id": order_id,
                "erp_article_id": article.erp_article_id,
                "article_number": meta.article_number,
                "name": meta.name,
                "quantity": article.quantity,
                "unit_price_net": article.unit_price_net,
                "tax_rate": meta.tax_rate,
                "sequence_number": article.sequence_number,
                "tax_class_id": meta.tax_class_id,
            })
        return positions


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

_SALUTATION_PATTERN = re.compile(r"\b(herrn?|frau)\b", re.IGNORECASE)
_TITLE_PATTERN = re.compile(r"\b(prof|dr)\b\.?", re.IGNORECASE)
_TITLES = {"prof": "Prof.", "dr": "Dr."}


def parse_salutation(raw: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a free-text salutation into (salutation, title).

    Best effort: "Herr Dr." -> ("Herr", "Dr."), "Frau Prof. Dr." ->
    ("Frau", "Prof. Dr."). Parts that cannot be recognized are None.
    """
    if not raw or not raw.strip():
        return None, None

    salutation = None
    match = _SALUTATION_PATTERN.search(raw)
    if match:
        salutation = "Frau" if match.group(1).lower() == "frau" else "Herr"

    titles = []
    for title_match in _TITLE_PATTERN.finditer(raw):
        title = _TITLES[title_match.group(1).lower()]
        if title not in titles:
            titles.append(title)

    return salutation, " ".join(titles) or None


def split_contact_name(full_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a person's name into (first name, last name) at the first blank.

    A single word is treated as the last name.
    """
    if not full_name or not full_name.strip():
        return None, None

    parts = full_name.strip().split(None, 1)
    if len(parts) == 1:
        return None, parts[0]
    return parts[0], parts[1].strip()


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(DECIMAL_QUANTUM)


def build_article_list(line_items: List[OrderLineItem]) -> List[ArticleListEntry]:
    """
    Turn requested lines into the typed article list.

    Lines without a positive article id or with a missing quantity or price
    are dropped with a warning. Sequence numbers are 1-based and follow the
    order of the remaining lines.
    """
    articles = []
    for index, item in enumerate(line_items):
        if not item.is_orderable:
            logger.warning(
                f"Skipping order line {index + 1} ({item.name or item.article_number or 'unnamed'}): "
                f"missing ERP article id, quantity or price"
            )
            continue

        try:
            quantity = _quantize(item.quantity)
            unit_price = _quantize(item.unit_price)
        except InvalidOperation:
            logger.warning(f"Skipping order line {index + 1}: quantity or price out of range")
            continue

        articles.append(ArticleListEntry(
            erp_article_id=item.erp_article_id,
            quantity=quantity,
            unit_price_net=unit_price,
            sequence_number=len(articles) + 1,
        ))
    return articles


def generate_order_number(now: datetime, prefix: Optional[str] = None, random_below=secrets.randbelow) -> str:
    """Order number of the form EXTERN-YYYYMMDD-N#### (4 random digits)."""
    prefix = prefix or settings.ERP_ORDER_NUMBER_PREFIX
    return f"{prefix}-{now:%Y%m%d}-N{random_below(10000):04d}"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class OrderScriptBuilder:
    """
    Builds the OrderScript for one validated order.

    Usage:
        builder = OrderScriptBuilder()
        script = builder.build(order, customer, articles, defaults)
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        random_below: Optional[Callable[[int], int]] = None,
        order_number_prefix: Optional[str] = None,
    ):
        self._clock = clock or datetime.now
        self._random_below = random_below or secrets.randbelow
        self._prefix = order_number_prefix

    def build(
        self,
        order: OrderInput,
        customer: CustomerSnapshot,
        articles: List[ArticleListEntry],
        defaults: ErpOrderDefaults,
    ) -> OrderScript:
        order_number = generate_order_number(self._clock(), self._prefix, self._random_below)

        billing = self._build_address(customer, BILLING_ADDRESS_TYPE, supplement=customer.notes or None)
        shipping = self._build_address(customer, SHIPPING_ADDRESS_TYPE)

        header = {
            "erp_user_id": defaults.erp_user_id,
            "erp_customer_id": customer.erp_customer_id,
            "order_number": order_number,
            "shop_id": defaults.shop_id,
            "platform_id": defaults.platform_id,
            "language_id": defaults.language_id,
            "currency": defaults.currency,
            "currency_factor": _quantize(defaults.currency_factor),
            "legal_entity_id": order.legal_entity_id,
            "warehouse_id": order.warehouse_id,
            "payment_method_id": order.payment_method_id,
            "shipping_method_id": order.shipping_method_id,
            "shipping_country_iso": shipping.country_iso,
        }

        return OrderScript(
            order_number=order_number,
            erp_customer_id=customer.erp_customer_id,
            header=header,
            billing_address=billing,
            shipping_address=shipping,
            articles=sorted(articles, key=lambda a: a.sequence_number),
            metadata_params={
                "language_id": defaults.language_id,
                "platform_id": defaults.platform_id,
                "tax_zone_id": defaults.tax_zone_id,
            },
        )

    @staticmethod
    def _person_name(customer: CustomerSnapshot) -> Tuple[Optional[str], Optional[str]]:
        if customer.is_company:
            return split_contact_name(customer.contact_person_name)
        if customer.first_name and customer.first_name.strip():
            return customer.first_name.strip(), (customer.name or "").strip() or None
        return split_contact_name(customer.name)

    def _build_address(
        self,
        customer: CustomerSnapshot,
        address_type: int,
        supplement: Optional[str] = None,
    ) -> OrderAddress:
        salutation, title = parse_salutation(customer.salutation)
        first_name, last_name = self._person_name(customer)

        company = customer.company_name or None
        if customer.is_company and not company:
            company = customer.name or None

        return OrderAddress(
            address_type=address_type,
            company=company,
            salutation=salutation,
            title=title,
            first_name=first_name,
            last_name=last_name,
            street=customer.street,
            zip_code=customer.zip_code,
            city=customer.city,
            country=customer.country or DEFAULT_COUNTRY,
            country_iso=(customer.country_iso or DEFAULT_COUNTRY_ISO).upper(),
            phone=customer.phone or None,
            email=customer.email or None,
            supplement=supplement,
        )
