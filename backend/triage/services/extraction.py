"""
Signal Extraction: turns a raw inbound text into the structured signals the
conversation engine routes on (intent, postcode, severity, stop / anger /
safety flags, name and free-text fields).

Two backends:
1. Heuristic (always available): menu replies "1"/"2"/"3", keyword regexes,
   UK postcode pattern, "my name is ..." style names.
2. OpenAI (LLM_PROVIDER=openai with an API key): one JSON-mode completion,
   validated with SignalExtractionSerializer and merged over the heuristic
   result.

Any OpenAI failure (network, quota, malformed JSON, schema mismatch) is
logged and the heuristic result is used instead. Extraction never raises.
"""
import json
import logging
import re

from django.conf import settings

from triage.utils import normalize_whitespace

logger = logging.getLogger(__name__)

INTENT_UNKNOWN = "UNKNOWN"
INTENT_VIEWING = "VIEWING"
INTENT_MAINTENANCE = "MAINTENANCE"
INTENT_GENERAL = "GENERAL"

# ─── Heuristic patterns ───────────────────────────────────────────────────────

UK_POSTCODE = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2})\b", re.I)
STOP = re.compile(r"\b(stop|unsubscribe|cancel|end|quit|remove me)\b", re.I)
INTENT_VIEWING_PATTERN = re.compile(r"\b(viewing|rent|rental|let|letting|property)\b", re.I)
INTENT_MAINTENANCE_PATTERN = re.compile(
    r"\b(repair|maintenance|leak|boiler|heating|plumbing|electrical|fault)\b", re.I
)
INTENT_GENERAL_PATTERN = re.compile(r"\b(other|general|question|query|enquiry|inquiry)\b", re.I)
URGENT = re.compile(r"\b(urgent|asap|today|immediately)\b", re.I)
ROUTINE = re.compile(r"\b(routine|normal|non[- ]?urgent)\b", re.I)
EMERGENCY = re.compile(
    r"\b(emergency|danger|fire|gas leak|smell gas|smoke|flood|sparks|electrocut\w*|carbon monoxide|co alarm)\b",
    re.I,
)
ANGER_KEYWORDS = re.compile(
    r"\b(complaint|lawyer|ombudsman|unsafe|ignored|ridiculous|disgusting|angry)\b", re.I
)
PROFANITY = re.compile(r"\b(fuck|fucking|shit|bastard|damn)\b", re.I)
NAME = re.compile(r"\b(i am|i'm|this is|my name is)\s+([a-z][a-z' -]{1,40})", re.I)
CALLBACK = re.compile(r"\b(callback|call me|ring me|tomorrow|am|pm|morning|afternoon|evening)\b", re.I)

MENU_REPLIES = {"1": INTENT_VIEWING, "2": INTENT_MAINTENANCE, "3": INTENT_GENERAL}


class SmsSignals:
    """Structured output of one extraction."""
    def __init__(
        self,
        stop: bool = False,
        intent: str = INTENT_UNKNOWN,
        postcode: str | None = None,
        severity: str | None = None,
        anger_signals: bool = False,
        safety_risk: bool = False,
        name: str | None = None,
        area_or_property: str | None = None,
        callback_text: str | None = None,
        issue_description: str | None = None,
        summary: str | None = None,
        used_openai: bool = False,
    ):
        self.stop = stop
        self.intent = intent
        self.postcode = postcode
        self.severity = severity
        self.anger_signals = anger_signals
        self.safety_risk = safety_risk
        self.name = name
        self.area_or_property = area_or_property
        self.callback_text = callback_text
        self.issue_description = issue_description
        self.summary = summary
        self.used_openai = used_openai


# ─── Heuristic extraction ─────────────────────────────────────────────────────

def _detect_all_caps(text: str) -> bool:
    letters = re.sub(r"[^A-Za-z]", "", text)
    if len(letters) < 10:
        return False
    upper = sum(1 for ch in letters if ch.isupper())
    return upper / len(letters) > 0.85


def _heuristic_intent(text: str) -> str:
    compact = text.strip().lower()
    if compact in MENU_REPLIES:
        return MENU_REPLIES[compact]
    if INTENT_MAINTENANCE_PATTERN.search(text):
        return INTENT_MAINTENANCE
    if INTENT_VIEWING_PATTERN.search(text):
        return INTENT_VIEWING
    if INTENT_GENERAL_PATTERN.search(text):
        return INTENT_GENERAL
    return INTENT_UNKNOWN


def _heuristic_severity(text: str) -> str | None:
    if EMERGENCY.search(text):
        return "EMERGENCY"
    # "non-urgent" contains "urgent"
    if ROUTINE.search(text):
        return "ROUTINE"
    if URGENT.search(text):
        return "URGENT"
    return None


def _heuristic_name(text: str) -> str | None:
    match = NAME.search(text)
    if not match:
        return None
    value = normalize_whitespace(match.group(2))
    return value if len(value) > 1 else None


def _heuristic_postcode(text: str) -> str | None:
    match = UK_POSTCODE.search(text)
    if not match:
        return None
    return normalize_whitespace(match.group(1).upper())


def heuristic_extraction(message_body: str) -> SmsSignals:
    body = normalize_whitespace(message_body)
    intent = _heuristic_intent(body)
    postcode = _heuristic_postcode(body)

    return SmsSignals(
        stop=bool(STOP.search(body)),
        intent=intent,
        postcode=postcode,
        severity=_heuristic_severity(body),
        anger_signals=bool(ANGER_KEYWORDS.search(body) or PROFANITY.search(body) or _detect_all_caps(body)),
        safety_risk=bool(EMERGENCY.search(body)),
        name=_heuristic_name(body),
        area_or_property=body if intent == INTENT_VIEWING and not postcode else None,
        callback_text=body if CALLBACK.search(body) else None,
        issue_description=body if intent == INTENT_MAINTENANCE else None,
        summary=body or None,
        used_openai=False,
    )


# ─── OpenAI extraction ────────────────────────────────────────────────────────

EXTRACTION_SYSTEM_PROMPT = (
    "You extract structured fields from UK property-management SMS messages. "
    "Output JSON only. Do not include markdown."
)

EXTRACTION_PROMPT = """Return JSON with keys:
stop:boolean, intent:(VIEWING|MAINTENANCE|GENERAL|UNKNOWN), postcode:string|null, severity:(ROUTINE|URGENT|EMERGENCY|null),
angerSignals:boolean, safetyRisk:boolean, name:string|null, areaOrProperty:string|null, callbackText:string|null, issueDescription:string|null, summary:string|null.
Message:
{message}"""


def _clean(value: str | None) -> str | None:
    if not value:
        return None
    return normalize_whitespace(value) or None


def _openai_extraction(message_body: str) -> SmsSignals | None:
    """Call OpenAI for extraction. Returns None when the model gives no content."""
    from openai import OpenAI
    from triage.serializers import SignalExtractionSerializer

    client = OpenAI(api_key=settings.OPENAI_API_KEY)
    response = client.chat.completions.create(
        model=settings.OPENAI_MODEL,
        temperature=0,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": EXTRACTION_PROMPT.format(message=message_body)},
        ],
    )

    content = response.choices[0].message.content if response.choices else None
    if not content:
        return None

    serializer = SignalExtractionSerializer(data=json.loads(content))
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    postcode = _clean(data.get("postcode"))
    return SmsSignals(
        stop=data["stop"],
        intent=data["intent"],
        postcode=postcode.upper() if postcode else None,
        severity=data.get("severity"),
        anger_signals=data["angerSignals"],
        safety_risk=data["safetyRisk"],
        name=_clean(data.get("name")),
        area_or_property=_clean(data.get("areaOrProperty")),
        callback_text=_clean(data.get("callbackText")),
        issue_description=_clean(data.get("issueDescription")),
        summary=_clean(data.get("summary")),
        used_openai=True,
    )


class SignalExtractor:
    """
    Default extractor handed to the conversation engine.
    use_openai=None means "decide from settings". backend is the model call,
    a callable taking the message body and returning SmsSignals or None.
    """

    def __init__(self, use_openai: bool | None = None, backend=None):
        if use_openai is None:
            use_openai = settings.LLM_PROVIDER == "openai" and bool(settings.OPENAI_API_KEY)
        self.use_openai = use_openai
        self.backend = backend or _openai_extraction

    def extract(self, message_body: str) -> SmsSignals:
        fallback = heuristic_extraction(message_body)
        if not self.use_openai:
            return fallback

        try:
            signals = self.backend(message_body)
        except Exception as e:
            logger.warning(f"OpenAI extraction failed, using heuristic fallback: {e}")
            return fallback

        return signals or fallback
