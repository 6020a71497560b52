"""
Local pattern-based intelligence extraction from counterparty messages.

This module is the cheap fallback signal that runs on every counterparty
message regardless of whether an external analyzer is available. It pulls
links, phone numbers, emails, payment handles and bank/card numbers out of
the text, classifies it with fixed keyword rules, and reports whether the
sender sounds impatient or suspicious.

Extraction is pure: identical text always yields identical candidates.
Entity spans never overlap. Payment handles and emails are claimed first,
then links, then phone numbers, then bank/card numbers, so a digit run that
reads as a phone number is never counted again as an account.
"""

import re
from typing import Dict, List, Optional, Sequence, Set, Tuple
from dataclasses import dataclass, field


Span = Tuple[int, int]


PAYMENT_PROVIDERS = (
    "paytm", "phonepe", "googlepay", "gpay", "amazonpay", "bhim", "upi",
    "ybl", "ibl", "axl", "apl", "okaxis", "okhdfcbank", "okicici", "oksbi",
)

LINK_TLDS = (
    "com", "net", "org", "io", "co", "in", "xyz", "online", "site",
    "link", "click", "info", "biz",
)

IMPERSONATED_BRANDS = ("Amazon", "Microsoft", "Apple", "Google", "PayPal", "Netflix")

GOVERNMENT_ENTITY = "Government Agency"

SUSPICIOUS_KEYWORDS = (
    "urgent", "verify", "blocked", "suspended", "prize", "won", "limited",
    "act now", "immediately", "otp", "code",
)

KEY_PHRASES = (
    "verify your identity", "confirm your account", "security alert",
    "unusual activity", "account suspended", "click here", "act now",
    "limited time", "won a prize", "refund pending",
)

# keyword pattern -> labels added per category
CLASSIFICATION_RULES: Sequence[Tuple[str, Dict[str, Tuple[str, ...]]]] = (
    (r"\b(?:otp|verification code|6-digit)\b",
     {"scam_type": ("OTP_THEFT",), "requested_data": ("OTP_CODE",)}),
    (r"\b(?:bank|account number|card)\b",
     {"scam_type": ("FINANCIAL_FRAUD",), "requested_data": ("FINANCIAL_CREDENTIALS",)}),
    (r"\b(?:password|pin)\b",
     {"requested_data": ("PASSWORD",)}),
    (r"\b(?:social security|ssn)\b",
     {"scam_type": ("IDENTITY_THEFT",), "requested_data": ("SSN",)}),
    (r"\b(?:prize|lottery|won)\b",
     {"scam_type": ("PRIZE_SCAM",)}),
    (r"\b(?:government|irs|tax)\b",
     {"scam_type": ("GOVERNMENT_IMPERSONATION",)}),
    (r"\b(?:suspended|locked)\b",
     {"attack_method": ("ACCOUNT_SUSPENSION_THREAT",)}),
    (r"\b(?:verify|confirm)\b",
     {"attack_method": ("FAKE_VERIFICATION",)}),
    (r"\b(?:urgent|immediately|now|asap|hurry)\b",
     {"psychological_techniques": ("URGENCY",)}),
    (r"\b(?:suspend\w*|block\w*|lose)\b",
     {"psychological_techniques": ("FEAR_OF_LOSS",)}),
    (r"\b(?:last chance|final|now or never)\b",
     {"psychological_techniques": ("SCARCITY",)}),
    (r"\b(?:official|legitimate|trust)\b",
     {"psychological_techniques": ("FALSE_AUTHORITY",)}),
)

FRUSTRATION_MARKERS = (
    r"\bhello\s*\?",
    r"\bare you (?:still )?there\b",
    r"\bhurry up\b",
    r"\bstop wasting\b",
    r"\bwast(?:e|ing) my time\b",
    r"\bare you (?:a bot|real)\b",
    r"\banswer me\b",
)


def _compile_words(words: Sequence[str]) -> List[Tuple[str, re.Pattern]]:
    return [(word, re.compile(r"\b" + re.escape(word) + r"\b", re.IGNORECASE)) for word in words]


_KEYWORD_PATTERNS = _compile_words(SUSPICIOUS_KEYWORDS)
_PHRASE_PATTERNS = _compile_words(KEY_PHRASES)
_BRAND_PATTERNS = _compile_words(IMPERSONATED_BRANDS)
_RULE_PATTERNS = [(re.compile(pattern, re.IGNORECASE), labels) for pattern, labels in CLASSIFICATION_RULES]
_FRUSTRATION_PATTERNS = [re.compile(pattern, re.IGNORECASE) for pattern in FRUSTRATION_MARKERS]
_GOVERNMENT_PATTERN = re.compile(r"\b(?:government|irs|tax)\b", re.IGNORECASE)

_TRAILING_PUNCTUATION = ".,;:!?)]}'\""


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value)


def _overlaps(span: Span, claimed: Sequence[Span]) -> bool:
    start, end = span
    return any(start < c_end and c_start < end for c_start, c_end in claimed)


@dataclass
class PatternCandidates:
    """Candidate values found in a single message, per category."""
    links: List[str] = field(default_factory=list)
    phone_numbers: List[str] = field(default_factory=list)
    emails: List[str] = field(default_factory=list)
    bank_accounts: List[str] = field(default_factory=list)
    payment_handles: List[str] = field(default_factory=list)
    suspicious_keywords: List[str] = field(default_factory=list)
    key_phrases: List[str] = field(default_factory=list)
    scam_type: List[str] = field(default_factory=list)
    requested_data: List[str] = field(default_factory=list)
    attack_method: List[str] = field(default_factory=list)
    psychological_techniques: List[str] = field(default_factory=list)
    impersonated_entity: Optional[str] = None
    frustration_marker: bool = False

    def add(self, category: str, value: str) -> None:
        """Append a value to a category unless already present."""
        values = getattr(self, category)
        if value not in values:
            values.append(value)


class BaseEntityExtractor:
    """Base class for span-aware entity extractors."""

    def __init__(self):
        self.patterns = self._get_patterns()
        self.validation_rules = self._get_validation_rules()

    def _get_patterns(self) -> List[re.Pattern]:
        """Get regex patterns for entity extraction."""
        raise NotImplementedError("Subclasses must implement _get_patterns")

    def _get_validation_rules(self) -> List[callable]:
        """Get validation rules a candidate must pass."""
        return []

    def _normalize(self, value: str) -> str:
        return value.strip()

    def dedupe_key(self, value: str) -> str:
        """Key used to treat two spellings as one entity."""
        return value.lower()

    def extract(self, text: str, claimed: List[Span],
                exclude: Optional[Set[str]] = None) -> List[Tuple[str, Span]]:
        """
        Extract entities whose spans do not overlap already claimed spans.

        Args:
            text: Message text
            claimed: Spans taken by earlier extractors; extended in place
            exclude: Dedupe keys that belong to a higher-precedence category

        Returns:
            List of (value, span) in order of appearance per pattern
        """
        exclude = exclude or set()
        entities = []
        seen = set()

        for pattern in self.patterns:
            for match in pattern.finditer(text):
                span = match.span()
                if _overlaps(span, claimed):
                    continue

                value = self._normalize(match.group())
                if not value or not all(rule(value) for rule in self.validation_rules):
                    continue

                key = self.dedupe_key(value)
                if key in exclude:
                    continue

                claimed.append(span)
                if key in seen:
                    continue
                seen.add(key)
                entities.append((value, span))

        return entities


class PaymentHandleExtractor(BaseEntityExtractor):
    """Extractor for user@provider payment handles on known providers."""

    def _get_patterns(self) -> List[re.Pattern]:
        providers = "|".join(PAYMENT_PROVIDERS)
        return [
            re.compile(r'\b[a-zA-Z0-9._-]{2,}@(?:' + providers + r')\b(?!\.[a-zA-Z])', re.IGNORECASE),
        ]


class EmailExtractor(BaseEntityExtractor):
    """Extractor for email addresses."""

    def _get_patterns(self) -> List[re.Pattern]:
        return [
            re.compile(r'\b[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}\b'),
        ]

    def _get_validation_rules(self) -> List[callable]:
        return [
            lambda email: email.count('@') == 1,
            lambda email: not email.split('@')[1].startswith('.'),
        ]


class LinkExtractor(BaseEntityExtractor):
    """Extractor for schemed, www-prefixed and bare-domain links."""

    def _get_patterns(self) -> List[re.Pattern]:
        tlds = "|".join(LINK_TLDS)
        return [
            re.compile(r'https?://[^\s<>"]+', re.IGNORECASE),
            re.compile(r'\bwww\.[a-zA-Z0-9][a-zA-Z0-9-]*\.[^\s<>"]+', re.IGNORECASE),
            # lowercase bare domains only; "already.In" is a missing space
            re.compile(
                r'\b[a-z0-9][a-z0-9-]*(?:\.[a-z0-9-]+)*\.(?:' + tlds + r')(?![\w-])(?:/[^\s<>"]*)?'
            ),
        ]

    def _normalize(self, value: str) -> str:
        return value.strip().rstrip(_TRAILING_PUNCTUATION)

    def _get_validation_rules(self) -> List[callable]:
        return [
            lambda url: len(url) < 500,
            lambda url: '.' in url,
        ]


class PhoneNumberExtractor(BaseEntityExtractor):
    """Extractor for country-code-prefixed and bare local phone numbers."""

    def _get_patterns(self) -> List[re.Pattern]:
        return [
            # +91 98765 43210 / +91-98765-43210
            re.compile(r'\+\d{1,3}[\s-]?\d{5}[\s-]\d{5}(?!\d)'),
            # +1 (555) 123-4567 / +91 9876543210
            re.compile(r'\+\d{1,3}[\s-]?\(?\d{3}\)?[\s-]?\d{3}[\s-]?\d{4}(?!\d)'),
            # 1800-123-4567 / 1800 123 4567 toll-free
            re.compile(r'(?<![\d+])1800[-\s]?\d{3}[-\s]?\d{4}(?!\d)'),
            # 9876543210 / 09876543210
            re.compile(r'(?<![\d+])0?[6-9]\d{9}(?!\d)'),
            # 555-123-4567 / (555) 123 4567
            re.compile(r'(?<![\d+])\(?\d{3}\)?[-.\s]\d{3}[-.\s]\d{4}(?!\d)'),
        ]

    def dedupe_key(self, value: str) -> str:
        return _digits(value)


class BankAccountExtractor(BaseEntityExtractor):
    """Extractor for card-like and account-like digit runs (11-18 digits)."""

    def _get_patterns(self) -> List[re.Pattern]:
        return [
            re.compile(r'(?<![\d+])\d(?:[ -]?\d){10,17}(?!\d)'),
        ]

    def _get_validation_rules(self) -> List[callable]:
        return [
            lambda acc: not _digits(acc).startswith('0000'),
        ]

    def dedupe_key(self, value: str) -> str:
        return _digits(value)


class PatternExtractor:
    """
    Runs the entity extractors in precedence order and the keyword rules.

    Stateless; one instance can be shared by every session.
    """

    def __init__(self):
        self.handle_extractor = PaymentHandleExtractor()
        self.email_extractor = EmailExtractor()
        self.link_extractor = LinkExtractor()
        self.phone_extractor = PhoneNumberExtractor()
        self.bank_extractor = BankAccountExtractor()

    def extract(self, text: str) -> PatternCandidates:
        """
        Extract candidate intelligence from one message.

        Args:
            text: Raw counterparty message

        Returns:
            PatternCandidates: Values per category, empty lists when nothing matched
        """
        candidates = PatternCandidates()
        if not text:
            return candidates

        claimed: List[Span] = []

        for value, _ in self.handle_extractor.extract(text, claimed):
            candidates.add("payment_handles", value)

        for value, _ in self.email_extractor.extract(text, claimed):
            candidates.add("emails", value)

        for value, _ in self.link_extractor.extract(text, claimed):
            candidates.add("links", value)

        phone_keys = set()
        for value, _ in self.phone_extractor.extract(text, claimed):
            candidates.add("phone_numbers", value)
            phone_keys.add(self.phone_extractor.dedupe_key(value))

        for value, _ in self.bank_extractor.extract(text, claimed, exclude=phone_keys):
            candidates.add("bank_accounts", value)

        self._classify(text, candidates)
        return candidates

    def _classify(self, text: str, candidates: PatternCandidates) -> None:
        """Apply the keyword rules to the message text."""
        for keyword, pattern in _KEYWORD_PATTERNS:
            if pattern.search(text):
                candidates.add("suspicious_keywords", keyword)

        for phrase, pattern in _PHRASE_PATTERNS:
            if pattern.search(text):
                candidates.add("key_phrases", phrase)

        for pattern, labels in _RULE_PATTERNS:
            if pattern.search(text):
                for category, values in labels.items():
                    for value in values:
                        candidates.add(category, value)

        if candidates.links:
            candidates.add("scam_type", "PHISHING")
            candidates.add("attack_method", "MALICIOUS_LINK")

        for brand, pattern in _BRAND_PATTERNS:
            if pattern.search(text):
                candidates.impersonated_entity = brand
                candidates.add("scam_type", "IMPERSONATION")
                candidates.add("attack_method", "BRAND_IMPERSONATION")
                break

        # government wording outranks a brand mention in the same message
        if _GOVERNMENT_PATTERN.search(text):
            candidates.impersonated_entity = GOVERNMENT_ENTITY

        candidates.frustration_marker = any(p.search(text) for p in _FRUSTRATION_PATTERNS)


pattern_extractor = PatternExtractor()


def extract_patterns(text: str) -> PatternCandidates:
    """Module-level convenience wrapper around the shared extractor."""
    return pattern_extractor.extract(text)
