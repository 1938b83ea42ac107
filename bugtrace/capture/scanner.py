"""
Static Scanners

Pattern detectors for inline script content plus the security header and
cookie checks. All functions are pure; the capture agent turns findings
into signals.

Detectors are plain case-insensitive regexes and deliberately keep their
false positives (a comment mentioning ``eval(`` still counts).
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Tuple

from ..common.schemas import Severity


@dataclass(frozen=True)
class Detector:
    """One static vulnerability pattern"""
    pattern: "re.Pattern"
    pattern_type: str
    risk: str  # HIGH / MEDIUM / LOW
    description: str
    remediation: str


@dataclass(frozen=True)
class Finding:
    detector: Detector
    match_count: int


# Order is significant: one signal per detector, emitted in this order
DETECTORS: Tuple[Detector, ...] = (
    Detector(
        re.compile(r"eval\s*\(", re.IGNORECASE),
        "Code Injection", "HIGH",
        "Use of eval() can lead to code injection vulnerabilities",
        "Replace eval() with JSON.parse() or safer alternatives",
    ),
    Detector(
        re.compile(r"innerHTML\s*=.*\+", re.IGNORECASE),
        "XSS", "HIGH",
        "Dynamic innerHTML assignment can lead to XSS attacks",
        "Use textContent or sanitize HTML input",
    ),
    Detector(
        re.compile(r"document\.write\(", re.IGNORECASE),
        "XSS", "MEDIUM",
        "document.write() can be exploited for XSS",
        "Use modern DOM manipulation methods",
    ),
    Detector(
        re.compile(r"window\.location\s*=.*\+", re.IGNORECASE),
        "Open Redirect", "MEDIUM",
        "Unvalidated redirects can be abused",
        "Validate URLs before redirecting",
    ),
    Detector(
        re.compile(r"localStorage\.setItem\([^)]*password[^)]*\)", re.IGNORECASE),
        "Data Exposure", "HIGH",
        "Storing passwords in localStorage is insecure",
        "Use secure authentication tokens instead",
    ),
    Detector(
        re.compile(r"http://[^/]+", re.IGNORECASE),
        "Insecure Communication", "MEDIUM",
        "Using HTTP instead of HTTPS",
        "Always use HTTPS for secure communication",
    ),
    Detector(
        re.compile(r"Math\.random\(\)", re.IGNORECASE),
        "Weak Randomness", "LOW",
        "Math.random() is not cryptographically secure",
        "Use crypto.getRandomValues() for security-sensitive operations",
    ),
)

RISK_SEVERITY = {
    "HIGH": Severity.ERROR,
    "MEDIUM": Severity.WARNING,
    "LOW": Severity.INFO,
}

SECURITY_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("Content-Security-Policy", "Missing Content-Security-Policy header"),
    ("X-Frame-Options", "Missing X-Frame-Options header - clickjacking risk"),
    ("X-Content-Type-Options", "Missing X-Content-Type-Options header"),
)

INSECURE_COOKIE_MESSAGE = "Cookie without Secure flag on HTTPS site"


def scan_code(sources: Iterable[str]) -> List[Finding]:
    """
    Run every detector over every source.

    Returns at most one Finding per detector, in detector order, with the
    match count summed over all sources. Detectors with no match are left
    out.
    """
    sources = [s for s in sources if s]
    findings = []
    for detector in DETECTORS:
        count = sum(len(detector.pattern.findall(code)) for code in sources)
        if count > 0:
            findings.append(Finding(detector=detector, match_count=count))
    return findings


def missing_security_headers(headers: Mapping[str, str]) -> List[Tuple[str, str]]:
    """(header, message) for each absent or empty security header"""
    present = {k.lower(): v for k, v in headers.items()}
    return [
        (name, message)
        for name, message in SECURITY_HEADERS
        if not present.get(name.lower())
    ]


def is_secure_cookie(cookie: str) -> bool:
    attributes = [part.strip().lower() for part in cookie.split(";")[1:]]
    return "secure" in attributes


def insecure_cookies(cookies: Iterable[str], page_is_secure: bool) -> List[str]:
    """Cookies lacking the Secure attribute; always empty on a non-https page"""
    if not page_is_secure:
        return []
    return [c.strip() for c in cookies if c.strip() and not is_secure_cookie(c)]
