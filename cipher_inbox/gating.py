"""
Input Gating — "looks encrypted" admission checks for inbox writes.

Every payload passes through three gates, in order, before it is stored:

- Length:     shorter than MIN_LENGTH bytes cannot carry real ciphertext framing
- Plaintext:  a mostly-printable prefix that contains a space reads as text
- Entropy:    too few distinct byte values for ciphertext

Three interchangeable profiles trade precision for cost:

- none:  accept everything (zero-validation tier)
- light: 32-byte text window, fixed-stride 64-position entropy sample
- full:  100-byte text window, whole-payload histogram

All arithmetic is integer percentages with floor division so two
implementations always agree bit-for-bit on the same input.

Usage:
    gate = get_gate("light")
    decision = gate.evaluate(payload)
    if not decision.accepted:
        print(decision.reason.value)
"""

from enum import Enum
from typing import Dict, List

MIN_LENGTH = 40

PRINTABLE_LOW = 32
PRINTABLE_HIGH = 126
SPACE = 0x20
PRINTABLE_THRESHOLD = 90  # percent, strictly greater than

FULL_PLAINTEXT_WINDOW = 100
FULL_ENTROPY_SPAN = 256
FULL_ENTROPY_THRESHOLD = 60

LIGHT_PLAINTEXT_WINDOW = 32
LIGHT_SAMPLE_SIZE = 64
LIGHT_ENTROPY_THRESHOLD = 60
LIGHT_SAMPLED_ENTROPY_THRESHOLD = 50

PROFILE_NONE = "none"
PROFILE_LIGHT = "light"
PROFILE_FULL = "full"

# Deployment tooling historically called the zero-validation tier "unsafe"
_PROFILE_ALIASES = {"unsafe": PROFILE_NONE}


class GateReason(str, Enum):
    TOO_SHORT = "TooShort"
    LOOKS_LIKE_PLAINTEXT = "LooksLikePlaintext"
    LOW_ENTROPY = "LowEntropy"
    LOOKS_ENCRYPTED = "LooksEncrypted"


class GateDecision:
    """Outcome of one evaluation: accepted flag plus the reason."""

    __slots__ = ("accepted", "reason")

    def __init__(self, accepted: bool, reason: GateReason):
        object.__setattr__(self, "accepted", accepted)
        object.__setattr__(self, "reason", reason)

    def __setattr__(self, name, value):
        raise AttributeError("GateDecision is immutable")

    def __eq__(self, other):
        if not isinstance(other, GateDecision):
            return NotImplemented
        return self.accepted == other.accepted and self.reason == other.reason

    def __hash__(self):
        return hash((self.accepted, self.reason))

    def __iter__(self):
        # Allows ``accepted, reason = gate.evaluate(payload)``
        return iter((self.accepted, self.reason))

    def to_dict(self) -> Dict:
        return {"accepted": self.accepted, "reason": self.reason.value}

    def __repr__(self) -> str:
        return f"<GateDecision accepted={self.accepted} reason={self.reason.value}>"


_ACCEPT = GateDecision(True, GateReason.LOOKS_ENCRYPTED)
_TOO_SHORT = GateDecision(False, GateReason.TOO_SHORT)
_PLAINTEXT = GateDecision(False, GateReason.LOOKS_LIKE_PLAINTEXT)
_LOW_ENTROPY = GateDecision(False, GateReason.LOW_ENTROPY)


# ── shared helpers ────────────────────────────────────────────────────────────

def as_bytes_view(payload) -> memoryview:
    """Return a zero-copy byte view; text must be encoded by the caller."""
    if isinstance(payload, str):
        raise TypeError("payload must be bytes-like, not str; encode it first")
    view = memoryview(payload)
    if view.ndim != 1 or view.itemsize != 1:
        view = view.cast("B")
    return view


def looks_like_plaintext(view, window: int) -> bool:
    """True when the first *window* bytes read like human text.

    More than PRINTABLE_THRESHOLD percent printable ASCII, and at least one
    space. The space requirement keeps dense printable binary (base64,
    hex dumps) from being flagged.
    """
    size = min(len(view), window)
    if size == 0:
        return False
    printable = 0
    spaces = 0
    for b in view[:size]:
        if PRINTABLE_LOW <= b <= PRINTABLE_HIGH:
            printable += 1
            if b == SPACE:
                spaces += 1
    return printable * 100 // size > PRINTABLE_THRESHOLD and spaces > 0


def unique_byte_values(values) -> int:
    """Count distinct byte values using a 256-bucket histogram."""
    histogram = [0] * 256
    for b in values:
        histogram[b] += 1
    return sum(1 for c in histogram if c > 0)


def sample_indices(length: int, sample_size: int = LIGHT_SAMPLE_SIZE) -> List[int]:
    """Evenly spaced positions ``i * length // sample_size`` for ``i < sample_size``."""
    return [i * length // sample_size for i in range(sample_size)]


# ── profiles ──────────────────────────────────────────────────────────────────

class _Gate:
    """Shared contract: ``evaluate(payload) -> GateDecision``."""

    profile = ""
    validates = True

    def evaluate(self, payload) -> GateDecision:
        raise NotImplementedError

    def should_store(self, payload) -> bool:
        """True if *payload* would be admitted."""
        return self.evaluate(payload).accepted

    def route(self, payload) -> Dict:
        """Complete decision as a dict with profile, accepted and reason."""
        return {"profile": self.profile, **self.evaluate(payload).to_dict()}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} profile={self.profile}>"


class NoOpGate(_Gate):
    """Zero-validation tier: every bytes-like payload is admitted."""

    profile = PROFILE_NONE
    validates = False

    def evaluate(self, payload) -> GateDecision:
        as_bytes_view(payload)
        return _ACCEPT


class FullGate(_Gate):
    """Whole-payload classifier with a 100-byte plaintext window.

    Entropy is the share of distinct byte values: relative to the payload
    length up to 256 bytes, relative to 256 beyond that.
    """

    profile = PROFILE_FULL

    def evaluate(self, payload) -> GateDecision:
        view = as_bytes_view(payload)
        length = len(view)
        if length < MIN_LENGTH:
            return _TOO_SHORT
        if looks_like_plaintext(view, FULL_PLAINTEXT_WINDOW):
            return _PLAINTEXT

        unique = unique_byte_values(view)
        denominator = length if length <= FULL_ENTROPY_SPAN else FULL_ENTROPY_SPAN
        if unique * 100 // denominator < FULL_ENTROPY_THRESHOLD:
            return _LOW_ENTROPY
        return _ACCEPT


class LightGate(_Gate):
    """Bounded-cost classifier.

    Reads a 32-byte plaintext window and, past 64 bytes, only a fixed-stride
    sample of 64 positions for the entropy check, so cost does not grow with
    payload size. The sampled branch uses a lower bar (50%) to make up for
    the smaller sample.
    """

    profile = PROFILE_LIGHT

    def evaluate(self, payload) -> GateDecision:
        view = as_bytes_view(payload)
        length = len(view)
        if length < MIN_LENGTH:
            return _TOO_SHORT
        if looks_like_plaintext(view, LIGHT_PLAINTEXT_WINDOW):
            return _PLAINTEXT

        if length <= LIGHT_SAMPLE_SIZE:
            unique = unique_byte_values(view)
            passed = unique * 100 // length >= LIGHT_ENTROPY_THRESHOLD
        else:
            sampled = (view[i] for i in sample_indices(length, LIGHT_SAMPLE_SIZE))
            unique = unique_byte_values(sampled)
            passed = unique * 100 // LIGHT_SAMPLE_SIZE >= LIGHT_SAMPLED_ENTROPY_THRESHOLD
        return _ACCEPT if passed else _LOW_ENTROPY


_GATES = {
    PROFILE_NONE: NoOpGate,
    PROFILE_LIGHT: LightGate,
    PROFILE_FULL: FullGate,
}

PROFILES = tuple(_GATES)


def normalize_profile(profile: str) -> str:
    """Map a profile name (or alias) to its canonical form.

    Raises:
        ValueError: for unknown profiles.
    """
    name = (profile or "").strip().lower()
    name = _PROFILE_ALIASES.get(name, name)
    if name not in _GATES:
        raise ValueError(
            f"Unknown gate profile {profile!r}. Use one of {', '.join(PROFILES)}."
        )
    return name


def get_gate(profile: str = PROFILE_FULL) -> _Gate:
    """Return a gate instance for *profile* (none, light, full; unsafe = none)."""
    return _GATES[normalize_profile(profile)]()
