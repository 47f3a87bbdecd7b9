"""
Field extraction from loosely structured dealer HTML.

Each field has an ordered list of named strategies. A strategy yields raw
candidate strings; the first candidate that passes the field's validator is
returned and later strategies are not consulted.
"""

import re
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag

from .config import VALID_COLOURS


ENGINE_MIN_CC = 600
ENGINE_MAX_CC = 8000

# Words that describe a paint finish rather than a colour.
COLOUR_FINISHES = ('metallic', 'pearl', 'pearlescent', 'matte', 'matt', 'gloss', 'solid', 'special')
COLOUR_ALIASES = {'gray': 'grey'}

TRANSMISSION_TOKENS = (
    (re.compile(r'semi[\s-]?auto', re.I), 'Semi-auto'),
    (re.compile(r'\bcvt\b', re.I), 'CVT'),
    (re.compile(r'\bauto(?:matic)?\b|\btiptronic\b|\bdsg\b', re.I), 'Automatic'),
    (re.compile(r'\bmanual\b', re.I), 'Manual'),
)

FUEL_TOKENS = (
    (re.compile(r'plug[\s-]?in|\bphev\b', re.I), 'Plug-in Hybrid'),
    (re.compile(r'hybrid', re.I), 'Hybrid'),
    (re.compile(r'diesel', re.I), 'Diesel'),
    (re.compile(r'petrol|gasoline', re.I), 'Petrol'),
    (re.compile(r'electric|\bev\b', re.I), 'Electric'),
)

BODY_TOKENS = (
    (re.compile(r'hatch', re.I), 'Hatchback'),
    (re.compile(r'saloon|sedan', re.I), 'Saloon'),
    (re.compile(r'estate|tourer|touring|\bavant\b', re.I), 'Estate'),
    (re.compile(r'\bsuv\b|crossover', re.I), 'SUV'),
    (re.compile(r'coup[eé]', re.I), 'Coupe'),
    (re.compile(r'convertible|cabrio(?:let)?|roadster', re.I), 'Convertible'),
    (re.compile(r'\bmpv\b|people\s*carrier', re.I), 'MPV'),
    (re.compile(r'\b4x4\b', re.I), '4x4'),
)

DRIVE_TOKENS = (
    (re.compile(r'\b(?:awd|4wd|4x4|all4|quattro|4matic|4motion|e-four)\b|\bxdrive|all[\s-]?wheel|four[\s-]?wheel', re.I), 'AWD'),
    (re.compile(r'\bfwd\b|front[\s-]?wheel', re.I), 'FWD'),
    (re.compile(r'\brwd\b|rear[\s-]?wheel', re.I), 'RWD'),
)

VRM_CURRENT = re.compile(r'^[A-Z]{2}[0-9]{2}[A-Z]{3}$')
VRM_LEGACY = (
    re.compile(r'^[A-Z][0-9]{1,3}[A-Z]{3}$'),     # prefix
    re.compile(r'^[A-Z]{3}[0-9]{1,3}[A-Z]$'),     # suffix
    re.compile(r'^[A-Z]{1,3}[0-9]{1,4}$'),        # dateless
    re.compile(r'^[0-9]{1,4}[A-Z]{1,3}$'),        # dateless, reversed
)

_NAME_CLASS = re.compile(r'(?:^|[-_])(?:name|label|key)$', re.I)

Candidates = Iterator[str]
Strategy = Tuple[str, Callable[['HtmlPage'], Iterable[str]]]


class HtmlPage:
    """Parsed views over one HTML fragment, built lazily."""

    def __init__(self, html: Union[str, Tag, None]):
        self._input = html if html is not None else ''
        self._soup = None
        self._text = None
        self._raw = None

    @property
    def soup(self) -> Union[BeautifulSoup, Tag]:
        if self._soup is None:
            if isinstance(self._input, Tag):
                self._soup = self._input
            else:
                self._soup = BeautifulSoup(self._input, 'lxml')
        return self._soup

    @property
    def raw(self) -> str:
        if self._raw is None:
            self._raw = str(self._input)
        return self._raw

    @property
    def text(self) -> str:
        if self._text is None:
            self._text = re.sub(r'\s+', ' ', self.soup.get_text(' '))
        return self._text


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace and strip control characters."""
    if not text:
        return ''
    text = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', text)
    text = text.replace('\xa0', ' ')
    return re.sub(r'\s+', ' ', text).strip()


def _label_matches(label: re.Pattern, text: str) -> bool:
    text = clean_text(text).rstrip(':').strip()
    return bool(text) and bool(label.fullmatch(text))


# --- strategy builders -----------------------------------------------------

def span_pairs(label: re.Pattern) -> Strategy:
    """<span class="...-name">Label</span><span class="...-value">Value</span>, and dt/dd pairs."""
    def strategy(page: HtmlPage) -> Candidates:
        for name_el in page.soup.find_all(class_=_NAME_CLASS):
            if _label_matches(label, name_el.get_text(' ')):
                value_el = name_el.find_next_sibling()
                if value_el is not None:
                    yield value_el.get_text(' ')
        for dt in page.soup.find_all('dt'):
            if _label_matches(label, dt.get_text(' ')):
                dd = dt.find_next_sibling('dd')
                if dd is not None:
                    yield dd.get_text(' ')
    return 'span_pairs', strategy


def table_rows(label: re.Pattern) -> Strategy:
    """<tr><th>Label</th><td>Value</td></tr>"""
    def strategy(page: HtmlPage) -> Candidates:
        for row in page.soup.find_all('tr'):
            cells = row.find_all(['th', 'td'])
            if len(cells) >= 2 and _label_matches(label, cells[0].get_text(' ')):
                yield cells[1].get_text(' ')
    return 'table_rows', strategy


def list_items(label: re.Pattern) -> Strategy:
    """<li>Label: Value</li>"""
    pattern = re.compile(rf'^\s*(?:{label.pattern})\s*[:\-]\s*(.+)$', re.I)

    def strategy(page: HtmlPage) -> Candidates:
        for li in page.soup.find_all('li'):
            match = pattern.match(clean_text(li.get_text(' ')))
            if match:
                yield match.group(1)
    return 'list_items', strategy


def loose_text(*patterns: str) -> Strategy:
    """Regexes over the fragment's visible text; group 1 is the candidate."""
    compiled = [re.compile(p, re.I) for p in patterns]

    def strategy(page: HtmlPage) -> Candidates:
        for regex in compiled:
            for match in regex.finditer(page.text):
                yield match.group(1)
    return 'loose_text', strategy


def raw_html(name: str, pattern: str, flags: int = re.I) -> Strategy:
    """Regex over the serialized HTML (hidden inputs, script variables)."""
    regex = re.compile(pattern, flags)

    def strategy(page: HtmlPage) -> Candidates:
        for match in regex.finditer(page.raw):
            yield match.group(1)
    return name, strategy


def labelled(label: str, *loose: str) -> List[Strategy]:
    """The standard chain: span pairs, table rows, list items, then loose regexes."""
    regex = re.compile(label, re.I)
    chain = [span_pairs(regex), table_rows(regex), list_items(regex)]
    if loose:
        chain.append(loose_text(*loose))
    return chain


# --- validators --------------------------------------------------------------

def _match_token(value: Optional[str], tokens) -> Optional[str]:
    if not value:
        return None
    for regex, canonical in tokens:
        if regex.search(value):
            return canonical
    return None


def normalize_transmission(value: Optional[str]) -> Optional[str]:
    """'6 speed Manual' -> 'Manual'"""
    return _match_token(value, TRANSMISSION_TOKENS)


def normalize_fuel_type(value: Optional[str]) -> Optional[str]:
    return _match_token(value, FUEL_TOKENS)


def normalize_body_style(value: Optional[str]) -> Optional[str]:
    return _match_token(value, BODY_TOKENS)


def normalize_drive_system(value: Optional[str]) -> Optional[str]:
    """4WD/4x4/ALL4/xDrive/... -> AWD; front-wheel -> FWD; rear-wheel -> RWD."""
    return _match_token(value, DRIVE_TOKENS)


def normalize_mileage(value: Optional[str]) -> Optional[str]:
    """Keep the digits and append the unit: '75,000' -> '75000 miles'."""
    if not value:
        return None
    digits = re.sub(r'[^0-9]', '', value)
    if not digits:
        return None
    return f"{int(digits)} miles"


def normalize_engine_size(value: Optional[str]) -> Optional[int]:
    """'1,969' -> 1969, '2.0 litre' -> 2000; anything outside 600-8000cc is discarded."""
    if not value:
        return None
    value = clean_text(value)
    cc_match = re.search(r'(\d[\d,]*)\s*cc\b', value, re.I)
    litres = re.match(r'^(\d{1,2}\.\d)\s*(?:l\b|litres?\b|liters?\b|$)', value, re.I)
    if cc_match:
        cc = int(cc_match.group(1).replace(',', ''))
    elif litres:
        cc = int(round(float(litres.group(1)) * 1000))
    else:
        number = re.match(r'^(\d[\d,]*)', value)
        if not number:
            return None
        cc = int(number.group(1).replace(',', ''))
    if ENGINE_MIN_CC <= cc <= ENGINE_MAX_CC:
        return cc
    return None


def normalize_doors(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = re.search(r'\b([2-7])\b|^([2-7])\s*(?:dr|door)', clean_text(value), re.I)
    if not match:
        return None
    return int(match.group(1) or match.group(2))


def normalize_registration_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = clean_text(value)
    match = re.search(r'\b\d{1,2}/\d{1,2}/\d{2,4}\b', value)
    if match:
        return match.group(0)
    match = re.search(r'\b\d{1,2}(?:st|nd|rd|th)?\s+[A-Za-z]{3,9}\s+\d{4}\b', value)
    if match:
        return match.group(0)
    match = re.search(r'\b\d{4}-\d{2}-\d{2}\b', value)
    return match.group(0) if match else None


def normalize_vrm(value: Optional[str], allow_legacy: bool = True) -> Optional[str]:
    """Uppercase, drop spaces and check the plate shape."""
    if not value:
        return None
    plate = re.sub(r'\s+', '', value).upper()
    if VRM_CURRENT.match(plate):
        return plate
    if allow_legacy and any(regex.match(plate) for regex in VRM_LEGACY):
        return plate
    return None


def plate_code_from_vrm(vrm: Optional[str]) -> Optional[str]:
    """'WP66UEX' -> '66'; legacy formats carry no 2-digit age code."""
    if vrm and VRM_CURRENT.match(vrm):
        return vrm[2:4]
    return None


class ColourValidator:
    """Validates colour text against a fixed set of colour names."""

    def __init__(self, valid_colours: Sequence[str] = VALID_COLOURS):
        self.valid_colours = tuple(c.lower() for c in valid_colours)

    def clean(self, value: Optional[str]) -> Optional[str]:
        """Strip parenthetical/pipe suffixes and leading finish words, keep the first token."""
        if not value:
            return None
        value = value.strip()
        value = re.sub(r'\s*\(.*?\)', '', value)
        value = re.sub(r'\s*\|.*$', '', value)
        value = re.sub(r'[/,].*$', '', value)
        value = re.sub(r'\s+', ' ', value).strip()
        tokens = value.split(' ')
        while len(tokens) > 1 and tokens[0].lower() in COLOUR_FINISHES:
            tokens = tokens[1:]
        token = tokens[0] if tokens else ''
        if not (2 <= len(token) <= 30) or not re.fullmatch(r'[A-Za-z \-]+', token):
            return None
        return token

    def __call__(self, value: Optional[str]) -> Optional[str]:
        token = self.clean(value)
        if not token:
            return None
        lowered = token.lower()
        for colour in self.valid_colours:
            if lowered == colour or (len(colour) >= 3 and lowered.startswith(colour)):
                return COLOUR_ALIASES.get(colour, colour).capitalize()
        return None


class FieldExtractor:
    """Extracts validated vehicle fields from HTML fragments."""

    CARD_FIELDS = (
        'mileage', 'colour', 'transmission', 'fuel_type', 'body_style',
        'engine_size_cc', 'first_registration_date',
    )
    DETAIL_FIELDS = CARD_FIELDS + ('drive_system', 'doors', 'registration_mark')

    def __init__(self, valid_colours: Sequence[str] = VALID_COLOURS, logger=None):
        """
        Initialize extractor.

        Args:
            valid_colours: Recognised colour names (case-insensitive)
            logger: Optional ScraperLogger for strategy errors
        """
        self.logger = logger
        self.validate_colour = ColourValidator(valid_colours)
        self.fields: Dict[str, Tuple[List[Strategy], Callable[[str], object]]] = {
            'colour': (
                labelled(r'(?:exterior\s+)?colou?r', r'(?<!interior\s)\bcolou?r\s*:?\s*([A-Za-z][A-Za-z \-]{1,40})'),
                self.validate_colour,
            ),
            'mileage': (
                labelled(r'mileage|odometer|miles',
                         r'\bmileage\s*:?\s*([\d,]{2,})',
                         r'\b(\d{1,3}(?:,\d{3})+|\d{2,7})\s*miles\b'),
                normalize_mileage,
            ),
            'engine_size_cc': (
                labelled(r'engine(?:\s*(?:size|capacity))?|capacity|cc',
                         r'\b(\d[\d,]{2,5})\s*cc\b',
                         r'\bengine\s*size\s*:?\s*([\d,.]+\s*(?:cc|l|litres?)?)'),
                normalize_engine_size,
            ),
            'transmission': (
                labelled(r'transmission|gearbox|gear\s*box',
                         r'\b(semi[\s-]?auto(?:matic)?|automatic|manual|cvt)\b'),
                normalize_transmission,
            ),
            'fuel_type': (
                labelled(r'fuel(?:\s*type)?',
                         r'\b(plug-in hybrid|phev|petrol|diesel|electric|hybrid)\b'),
                normalize_fuel_type,
            ),
            'body_style': (
                labelled(r'body(?:\s*(?:style|type))?',
                         r'\b(hatchback|saloon|estate|suv|coupe|convertible|mpv|4x4)\b'),
                normalize_body_style,
            ),
            'drive_system': (
                labelled(r'drive(?:\s*(?:system|train|type|wheels))?|drivetrain|drive\s*line',
                         r'\b(awd|4wd|4x4|all4|xdrive\w*|quattro|4matic|4motion|fwd|rwd)\b'),
                normalize_drive_system,
            ),
            'first_registration_date': (
                labelled(r'first\s*reg(?:istration|istered)?(?:\s*date)?|reg(?:istration)?\.?\s*date|date\s*(?:first\s*)?registered',
                         r'first\s*reg(?:istration)?(?:\s*date)?\s*:?\s*(\d{1,2}/\d{1,2}/\d{2,4})',
                         r'\b(\d{1,2}/\d{1,2}/\d{4})\b'),
                normalize_registration_date,
            ),
            'doors': (
                labelled(r'(?:no\.?\s*of\s*)?doors?', r'\b([2-7])\s*-?\s*(?:dr|doors?)\b'),
                normalize_doors,
            ),
            'registration_mark': (
                [
                    raw_html('vrm_input', r'<input[^>]*name=["\']vrm["\'][^>]*value=["\']([^"\']+)["\']'),
                    raw_html('vrm_input_reversed', r'<input[^>]*value=["\']([^"\']+)["\'][^>]*name=["\']vrm["\']'),
                    raw_html('vrm_script', r'\bvr[mn]["\']?\s*[:=]\s*["\']([A-Za-z0-9 ]{2,9})["\']'),
                    raw_html('vrm_quoted_plate', r'["\']([A-Z]{2}[0-9]{2}\s?[A-Z]{3})["\']', flags=0),
                ],
                normalize_vrm,
            ),
        }

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(self.fields)

    def strategy_names(self, field_name: str) -> List[str]:
        """Names of a field's strategies, in priority order."""
        strategies, _ = self.fields[field_name]
        return [name for name, _ in strategies]

    def extract(self, field_name: str, html: Union[str, Tag, None]):
        """
        Extract one field.

        Args:
            field_name: One of field_names
            html: Raw HTML string or an already-parsed element

        Returns:
            Validated value or None
        """
        return self._extract(field_name, as_page(html))

    def extract_all(self, html: Union[str, Tag, None], fields: Optional[Sequence[str]] = None) -> Dict[str, object]:
        """
        Extract several fields from one fragment, parsing it only once.

        Returns:
            Dict of field name -> value (None when not found)
        """
        page = as_page(html)
        return {name: self._extract(name, page) for name in (fields or self.field_names)}

    def _extract(self, field_name: str, page: HtmlPage):
        if field_name not in self.fields:
            raise KeyError(f"Unknown field: {field_name}")
        strategies, validate = self.fields[field_name]
        return first_valid(page, strategies, validate, logger=self.logger, field_name=field_name)


def as_page(html) -> HtmlPage:
    return html if isinstance(html, HtmlPage) else HtmlPage(html)


def first_valid(page: HtmlPage, strategies: Sequence[Strategy], validate: Callable[[str], object],
                logger=None, field_name: str = ''):
    """Run strategies in order; the first candidate that validates wins."""
    for name, strategy in strategies:
        try:
            for candidate in strategy(page):
                value = validate(candidate)
                if value is not None:
                    return value
        except Exception as e:
            # Malformed markup degrades to "not found" for this strategy
            if logger:
                logger.debug("Extraction strategy failed", field=field_name,
                             strategy=name, error=str(e))
    return None
