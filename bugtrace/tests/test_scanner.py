"""Tests for static vulnerability detectors and header/cookie checks."""


class TestScanCode:
    def test_detector_order_is_fixed(self):
        from bugtrace.capture.scanner import DETECTORS
        assert [d.pattern_type for d in DETECTORS] == [
            "Code Injection", "XSS", "XSS", "Open Redirect",
            "Data Exposure", "Insecure Communication", "Weak Randomness",
        ]
        assert [d.risk for d in DETECTORS] == ["HIGH", "HIGH", "MEDIUM", "MEDIUM", "HIGH", "MEDIUM", "LOW"]

    def test_counts_sum_across_scripts(self):
        from bugtrace.capture.scanner import scan_code
        findings = scan_code(["eval(a)", "x = 1; EVAL (b); eval(c)"])
        assert len(findings) == 1
        assert findings[0].match_count == 3

    def test_one_finding_per_detector_in_order(self):
        from bugtrace.capture.scanner import scan_code
        code = """
            var id = Math.random();
            el.innerHTML = "<b>" + name;
            document.write(banner);
            fetch("http://api.example.com/data");
            localStorage.setItem("password", pw);
            window.location = base + path;
            eval(payload);
        """
        findings = scan_code([code])
        assert [f.detector.pattern_type for f in findings] == [
            "Code Injection", "XSS", "XSS", "Open Redirect",
            "Data Exposure", "Insecure Communication", "Weak Randomness",
        ]
        assert all(f.match_count == 1 for f in findings)

    def test_false_positives_are_kept(self):
        from bugtrace.capture.scanner import scan_code
        findings = scan_code(["// never call retrieval(x)"])
        assert findings[0].detector.pattern_type == "Code Injection"

    def test_clean_code_has_no_findings(self):
        from bugtrace.capture.scanner import scan_code
        assert scan_code(["const a = JSON.parse(s);", ""]) == []

    def test_innerhtml_without_concatenation_is_clean(self):
        from bugtrace.capture.scanner import scan_code
        assert scan_code(["el.innerHTML = template;"]) == []

    def test_https_is_clean(self):
        from bugtrace.capture.scanner import scan_code
        assert scan_code(['fetch("https://api.example.com")']) == []


class TestHeaders:
    def test_all_missing(self):
        from bugtrace.capture.scanner import missing_security_headers
        assert [m for _, m in missing_security_headers({})] == [
            "Missing Content-Security-Policy header",
            "Missing X-Frame-Options header - clickjacking risk",
            "Missing X-Content-Type-Options header",
        ]

    def test_lookup_is_case_insensitive(self):
        from bugtrace.capture.scanner import missing_security_headers
        headers = {
            "content-security-policy": "default-src 'self'",
            "X-FRAME-OPTIONS": "DENY",
            "x-content-type-options": "nosniff",
        }
        assert missing_security_headers(headers) == []

    def test_empty_value_counts_as_missing(self):
        from bugtrace.capture.scanner import missing_security_headers
        headers = {"Content-Security-Policy": "", "X-Frame-Options": "DENY", "X-Content-Type-Options": "nosniff"}
        assert [h for h, _ in missing_security_headers(headers)] == ["Content-Security-Policy"]


class TestCookies:
    def test_insecure_cookies_on_https(self):
        from bugtrace.capture.scanner import insecure_cookies
        cookies = ["sid=1; Secure; HttpOnly", "theme=dark", "lang=en; secure", " "]
        assert insecure_cookies(cookies, page_is_secure=True) == ["theme=dark"]

    def test_secure_in_value_does_not_count(self):
        from bugtrace.capture.scanner import insecure_cookies
        assert insecure_cookies(["mode=Secure"], page_is_secure=True) == ["mode=Secure"]

    def test_http_page_never_flags(self):
        from bugtrace.capture.scanner import insecure_cookies
        assert insecure_cookies(["theme=dark"], page_is_secure=False) == []
