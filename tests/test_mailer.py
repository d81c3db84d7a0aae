import smtplib

from src.scout.services import mailer


class FakeSMTP:
    instances = []
    fail_login = False

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")
        self.calls.append(("login", user))

    def send_message(self, message):
        self.sent.append(message)


def _configure(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_login = False
    monkeypatch.setenv("SCOUT_SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SCOUT_SMTP_USER", "scout@example.com")
    monkeypatch.setenv("SCOUT_SMTP_PASSWORD", "secret")
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)


def test_unconfigured_smtp_skips_the_notice():
    assert mailer.smtp_configured() is False
    assert mailer.send_brief_notice("admin@example.com", "Acme", "# swap hero") is False


def test_notice_is_sent_over_starttls(monkeypatch):
    _configure(monkeypatch)

    assert mailer.send_brief_notice("admin@example.com", "Acme Launch", "\n# swap the hero\n- new photo") is True

    [client] = FakeSMTP.instances
    assert (client.host, client.port) == ("smtp.example.com", 587)
    assert client.calls == ["ehlo", "starttls", "ehlo", ("login", "scout@example.com")]
    [message] = client.sent
    assert message["Subject"] == "new edit brief: Acme Launch"
    assert message["From"] == "scout@example.com"
    assert message["To"] == "admin@example.com"
    assert message.get_content().startswith("# swap the hero\n\n")


def test_bad_port_or_failed_login_returns_false(monkeypatch):
    _configure(monkeypatch)
    monkeypatch.setenv("SCOUT_SMTP_PORT", "not-a-port")
    assert mailer.smtp_configured() is False

    monkeypatch.setenv("SCOUT_SMTP_PORT", "2525")
    FakeSMTP.fail_login = True
    assert mailer.send_brief_notice("admin@example.com", "Acme", "brief") is False


def test_malformed_numeric_settings_fall_back_to_defaults(monkeypatch):
    _configure(monkeypatch)
    monkeypatch.setenv("SCOUT_SMTP_TIMEOUT", "ten")
    monkeypatch.setenv("SCOUT_SMTP_USE_TLS", "off")

    assert mailer.send_brief_notice("admin@example.com", "Acme", "brief") is True

    [client] = FakeSMTP.instances
    assert client.timeout == 10
    assert "starttls" not in client.calls
