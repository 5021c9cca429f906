"""
Lithuanian invoice vocabulary.

Every locale-specific word the extraction engine looks for lives here, so a
different label vocabulary can be swapped in without touching the engine.
Entries are lowercase; label lists are matched against diacritic-folded text
unless noted otherwise.
"""

from ..models.invoice import FieldName

# Lithuanian letters folded to their base Latin letter (lowercase only;
# callers lowercase first).
DIACRITIC_FOLDING = str.maketrans({
    "ą": "a",
    "č": "c",
    "ę": "e",
    "ė": "e",
    "ē": "e",
    "į": "i",
    "ī": "i",
    "š": "s",
    "ų": "u",
    "ū": "u",
    "ž": "z",
})

# Field -> label synonyms. Order matters: the first field with a matching
# synonym wins, so the more specific identifier labels come before the
# generic amount/name ones.
KEYWORD_MAP: dict[FieldName, tuple[str, ...]] = {
    FieldName.VAT_NUMBER: (
        "pvm kodas", "pvm numeris", "pvmnumeris", "pvmkodas",
        "pvm moketojo kodas", "vat number", "vat code", "vat kodas",
    ),
    FieldName.COMPANY_NUMBER: (
        "imones kodas", "imoneskodas", "im. kodas", "im.kodas",
        "registracijos kodas", "registracijos numeris", "company code",
        "company number",
    ),
    FieldName.INVOICE_ID: (
        "invoice number", "invoice no", "saskaitos numeris", "saskaitos serija",
        "fakturos serija", "fakturos numeris", "serijos kodas", "serija",
        "serijos", "series", "numeris", "numerio", "nr.", "nr ",
    ),
    FieldName.DATE: (
        "saskaitos data", "israsymo data", "invoice date", "sf data",
        "saskaitos fakturos data", "data", "date",
    ),
    FieldName.VAT_AMOUNT: (
        "pvm suma", "pvmsuma", "vat amount", "vat suma",
    ),
    FieldName.AMOUNT_WITHOUT_VAT: (
        "suma be pvm", "suma bepvm", "sumabepvm", "apmokestinamoji verte",
        "before vat", "without vat", "subtotal", "pardavimo tarpine suma",
        "tarpine suma",
    ),
    FieldName.COMPANY_NAME: (
        "pardavejas", "tiekejas", "pirkejas", "gavejas", "imone", "kompanija",
        "bendrove", "company", "seller", "supplier", "buyer", "vendor",
    ),
}

# Legal-form tokens, diacritic-folded. Matched as whole words.
LEGAL_FORMS = (
    "uzdaroji akcine bendrove",
    "akcine bendrove",
    "mazoji bendrija",
    "individuali imone",
    "uab",
    "ab",
    "mb",
    "ii",
    "vsi",
    "ltd",
    "oy",
    "as",
    "sp",
    "sia",
    "gmbh",
    "llc",
    "inc",
)

# Bare section headers; never a company name.
SECTION_LABELS = (
    "pardavejas", "pardavejo", "tiekejas", "tiekejo", "gavejas", "gavejo",
    "pirkejas", "pirkejo", "seller", "buyer", "recipient", "supplier",
    "customer", "vendor", "imone", "kompanija", "bendrove", "company",
)

BUYER_SECTION_KEYWORDS = ("pirkejas", "pirkejo", "buyer", "gavejas", "customer")
SELLER_SECTION_KEYWORDS = ("pardavejas", "pardavejo", "tiekejas", "tiekejo", "seller", "supplier")

# Header labels searched for a company name, by section.
BUYER_HEADER_LABELS = ("pirkejas", "pirkejo", "buyer", "gavejas", "customer")
SELLER_HEADER_LABELS = ("tiekejas", "pardavejas", "seller", "supplier")

# Words that mark a line as invoice vocabulary rather than a name.
INVOICE_VOCABULARY = (
    "saskaita", "faktura", "invoice", "pvmsaskaitafaktura", "saskaitafaktura",
)

# Words that mark a line as an identifier line rather than a name.
IDENTIFIER_VOCABULARY = ("kodas", "numeris", "code", "number")

# Amount-in-words rule: a line containing one word from each group is a
# spelled-out total ("Šešiasdešimt aštuoni eurai ir 51 centas").
AMOUNT_IN_WORDS_CURRENCY = ("eurai", "euru", "euras")
AMOUNT_IN_WORDS_FRACTION = ("centas", "centai", "centu", "ct.")
AMOUNT_IN_WORDS_LABELS = ("suma zodziais",)

# "Company code" label family for the company-number pre-pass. A bare
# "kodas" only counts outside the excluded contexts.
COMPANY_CODE_LABELS = (
    "imones kodas", "imoneskodas", "im. kodas", "im.kodas", "im.k", "company code",
    "company number", "registracijos kodas",
)
BARE_CODE_LABEL = "kodas"
BARE_CODE_EXCLUDED_CONTEXTS = ("pvm kodas", "pvmkodas", "pvm moketojo kodas", "saskaitos kodas", "serijos kodas")

# Invoice-number context: a number right after these is not a company number.
INVOICE_NUMBER_PREFIXES = ("nr.", "nr", "no.", "numeris", "serija", "series")

# Amounts within this many characters of these words are not company numbers.
AMOUNT_CONTEXT_WORDS = ("suma", "kaina", "price", "amount", "total", "€", "eur")
AMOUNT_CONTEXT_UNITS = ("eur", "€", "lt", "vnt")

SERIES_KEYWORDS = ("serijos kodas", "serija", "serijos", "series")
NUMBER_KEYWORDS = ("numeris", "numerio", "number", "nr.", "nr")

DATE_LABELS = ("data", "date")

LITHUANIAN_MONTHS = {
    "sausio": 1,
    "vasario": 2,
    "kovo": 3,
    "balandzio": 4,
    "geguzes": 5,
    "birzelio": 6,
    "liepos": 7,
    "rugpjucio": 8,
    "rugsejo": 9,
    "spalio": 10,
    "lapkricio": 11,
    "gruodzio": 12,
}

# Amount label fallbacks.
NET_AMOUNT_KEYWORDS = (
    "suma be pvm", "suma bepvm", "sumabepvm", "pardavimo tarpine suma",
    "tarpine suma", "apmokestinamoji verte", "subtotal", "without vat",
)
VAT_AMOUNT_KEYWORDS = ("pvm suma", "pvmsuma", "vat amount", "vat suma")
GROSS_AMOUNT_MARKERS = ("suma su pvm", "sumasupvm", "total su pvm", "moketi", "is viso su pvm")
VAT_RATE_MARKERS = ("pvm %", "pvm%", "tarifas")
TOTALS_KEYWORDS = ("suma", "total", "eur", "is viso")

VAT_RATE_TEXT_LABELS = ("pvm", "vat", "tarifas", "rate", "procentas")

# Standard Lithuanian VAT rates, in percent.
VAT_RATES = (21, 9, 5, 0)

# Reverse-charge markers used for tax-code determination.
REVERSE_CHARGE_MARKERS = ("96 straipsn", "atvirkstinis pvm", "atvirkstinio apmokestinimo", "reverse charge")

# IBAN check-digit prefixes commonly printed without spaces; an "LT" match
# starting with one of these is a bank account, not a VAT number.
IBAN_PREFIXES = ("LT49", "LT70", "LT73")
