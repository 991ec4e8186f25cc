"""
Unit tests for email_intel/modules/email_parser.py

SECURITY STORY: the parser is the boundary between raw, untrusted email bytes
and the detectors. These tests pin down the format dispatch, the header and
body normalisation rules, and the limits applied to hostile input.
"""

import unittest
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import pytest

from email_intel.modules.email_data import ParsedEmail
from email_intel.modules.email_parser import (
    EmailParser,
    classify_time_slot,
    get_file_extension,
    parse_email_date,
)
from email_intel.modules.errors import (
    EmptyContentError,
    MalformedDateError,
    UnsupportedFormatError,
)
from email_intel.utils.config import ThreatConfig
from email_intel.utils.security_validators import MAX_MIME_PARTS, MAX_SUBJECT_LENGTH


def _simple_raw(subject="Test", body="Hello world", **headers) -> bytes:
    msg = MIMEText(body)
    msg["Subject"] = subject
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    for key, value in headers.items():
        msg[key.replace("_", "-")] = value
    return msg.as_bytes()


def _with_attachment(filename: str, payload: bytes = b"MZ\x90\x00") -> bytes:
    msg = MIMEMultipart()
    msg["Subject"] = "Invoice"
    msg["From"] = "billing@example.com"
    msg.attach(MIMEText("Please see the attached invoice."))
    part = MIMEBase("application", "octet-stream")
    part.set_payload(payload)
    encoders.encode_base64(part)
    part.add_header("Content-Disposition", "attachment", filename=filename)
    msg.attach(part)
    return msg.as_bytes()


class TestFormatDispatch(unittest.TestCase):
    """parse() picks a handler from the filename extension"""

    def setUp(self):
        self.parser = EmailParser()

    def test_eml_headers_and_body(self):
        parsed = self.parser.parse(_simple_raw(), "message.eml")

        self.assertIsInstance(parsed, ParsedEmail)
        self.assertEqual(parsed.subject, "Test")
        self.assertEqual(parsed.sender, "sender@example.com")
        self.assertEqual(parsed.recipient, "recipient@example.com")
        self.assertEqual(parsed.body, "Hello world")

    def test_extension_is_case_insensitive(self):
        parsed = self.parser.parse(_simple_raw(), "MESSAGE.EML")
        self.assertEqual(parsed.subject, "Test")

    def test_dotfile_name_is_its_own_extension(self):
        parsed = self.parser.parse(_simple_raw(), ".eml")
        self.assertEqual(parsed.subject, "Test")
        self.assertEqual(parsed.source_name, ".eml")

    def test_txt_scans_leading_header_lines(self):
        raw = b"From: alice@example.com\nSubject: Lunch plans\nNotAHeader: nope\n\nSee you at noon."
        parsed = self.parser.parse(raw, "note.txt")

        self.assertEqual(parsed.headers["from"], "alice@example.com")
        self.assertEqual(parsed.subject, "Lunch plans")
        self.assertNotIn("notaheader", parsed.headers)
        self.assertIn("See you at noon.", parsed.body)

    def test_msg_extracts_known_fields(self):
        raw = b"Subject: Quarterly numbers\r\nFrom: cfo@example.com\r\nThe report is attached."
        parsed = self.parser.parse(raw, "outlook.msg")

        self.assertEqual(parsed.subject, "Quarterly numbers")
        self.assertEqual(parsed.sender, "cfo@example.com")
        self.assertIn("The report is attached.", parsed.body)

    def test_mbox_with_one_message_returns_single_email(self):
        raw = b"From alice@example.com Mon Jan 15 09:30:00 2024\nSubject: One\n\nOnly message\n"
        parsed = self.parser.parse(raw, "archive.mbox")

        self.assertIsInstance(parsed, ParsedEmail)
        self.assertEqual(parsed.subject, "One")

    def test_mbox_with_several_messages_returns_list(self):
        raw = (
            b"From alice@example.com Mon Jan 15 09:30:00 2024\nSubject: First\n\nBody one\n\n"
            b"From bob@example.com Mon Jan 15 10:30:00 2024\nSubject: Second\n\nBody two\n"
        )
        parsed = self.parser.parse(raw, "archive.mbox")

        self.assertIsInstance(parsed, list)
        self.assertEqual([email.subject for email in parsed], ["First", "Second"])

    def test_mbox_skips_empty_messages(self):
        raw = (
            b"From alice@example.com Mon Jan 15 09:30:00 2024\nSubject: Empty\n\n\n"
            b"From bob@example.com Mon Jan 15 10:30:00 2024\nSubject: Kept\n\nBody\n"
        )
        parsed = self.parser.parse(raw, "archive.mbox")

        self.assertIsInstance(parsed, ParsedEmail)
        self.assertEqual(parsed.subject, "Kept")

    def test_mbox_without_messages_is_empty(self):
        with self.assertRaises(EmptyContentError):
            self.parser.parse(b"no separator lines here", "archive.mbox")


class TestParseErrors(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_unsupported_extension(self):
        with self.assertRaises(UnsupportedFormatError) as ctx:
            self.parser.parse(b"%PDF-1.4", "report.pdf")
        self.assertEqual(ctx.exception.extension, ".pdf")
        self.assertIn("Unsupported file format", str(ctx.exception))

    def test_unsupported_extension_checked_before_content(self):
        with self.assertRaises(UnsupportedFormatError):
            self.parser.parse(b"", "report.docx")

    def test_missing_extension(self):
        with self.assertRaises(UnsupportedFormatError):
            self.parser.parse(b"hello", "README")

    def test_empty_file(self):
        with self.assertRaises(EmptyContentError):
            self.parser.parse(b"", "empty.eml")

    def test_whitespace_only_file(self):
        with self.assertRaises(EmptyContentError):
            self.parser.parse(b"  \r\n\t ", "blank.txt")

    def test_headers_without_body_or_attachments(self):
        with self.assertRaises(EmptyContentError):
            self.parser.parse(b"Subject: Nothing here\r\nFrom: a@example.com\r\n\r\n   \r\n", "x.eml")

    def test_errors_share_base_class(self):
        from email_intel.modules.errors import EmailIntelError

        for error in (UnsupportedFormatError(".pdf"), EmptyContentError("x"), MalformedDateError("x")):
            self.assertIsInstance(error, EmailIntelError)


class TestHeaderNormalisation(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_keys_are_lower_case(self):
        parsed = self.parser.parse(_simple_raw(X_Custom_Header="Value"), "m.eml")
        self.assertEqual(parsed.headers["x-custom-header"], "Value")
        for key in parsed.headers:
            self.assertEqual(key, key.lower())

    def test_folded_header_is_unfolded(self):
        raw = b"Subject: first part\r\n  second part\r\nFrom: a@example.com\r\n\r\nBody"
        parsed = self.parser.parse(raw, "folded.eml")
        self.assertEqual(parsed.subject, "first part second part")

    def test_last_duplicate_header_wins(self):
        raw = b"X-Tag: one\r\nX-Tag: two\r\nSubject: dup\r\n\r\nBody"
        parsed = self.parser.parse(raw, "dup.eml")
        self.assertEqual(parsed.headers["x-tag"], "two")

    def test_encoded_subject_is_decoded(self):
        raw = b"Subject: =?utf-8?q?Caf=C3=A9_menu?=\r\n\r\nBody"
        parsed = self.parser.parse(raw, "encoded.eml")
        self.assertEqual(parsed.subject, "Café menu")

    def test_oversized_subject_is_truncated(self):
        with self.assertLogs("EmailParser", level="WARNING"):
            parsed = self.parser.parse(_simple_raw(subject="A" * (MAX_SUBJECT_LENGTH + 500)), "m.eml")
        self.assertEqual(len(parsed.subject), MAX_SUBJECT_LENGTH)


class TestBodyCleaning(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_quoted_lines_removed(self):
        body = "Thanks for the update.\n> earlier message\n  >> even older\nCheers"
        parsed = self.parser.parse(_simple_raw(body=body), "reply.eml")

        self.assertEqual(parsed.body, "Thanks for the update.\nCheers")
        for line in parsed.body.split("\n"):
            self.assertFalse(line.strip().startswith(">"))

    def test_metadata_counts_quoted_lines(self):
        body = "one two\n> three four"
        parsed = self.parser.parse(_simple_raw(body=body), "reply.eml")

        self.assertEqual(parsed.metadata.word_count, 5)
        self.assertNotIn("three", parsed.body)

    def test_blank_line_runs_collapse(self):
        parsed = self.parser.parse(_simple_raw(body="first\n\n\n\n\nsecond\n\n"), "m.eml")
        self.assertEqual(parsed.body, "first\n\nsecond")

    def test_clean_body_is_idempotent(self):
        text = "a\n> b\n\n\n\nc"
        once = EmailParser.clean_body(text)
        self.assertEqual(EmailParser.clean_body(once), once)

    def test_html_only_body_is_converted(self):
        msg = MIMEMultipart("alternative")
        msg["Subject"] = "Newsletter"
        msg.attach(MIMEText("<p>Hello &amp; welcome</p>", "html"))
        parsed = self.parser.parse(msg.as_bytes(), "news.eml")

        self.assertIn("Hello & welcome", parsed.body)
        self.assertNotIn("<p>", parsed.body)


class TestAttachments(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_attachment_descriptor(self):
        parsed = self.parser.parse(_with_attachment("invoice.pdf.exe", b"12345678"), "a.eml")

        self.assertEqual(len(parsed.attachments), 1)
        attachment = parsed.attachments[0]
        self.assertEqual(attachment.filename, "invoice.pdf.exe")
        self.assertEqual(attachment.size, 8)
        self.assertEqual(attachment.content_type, "application/octet-stream")
        self.assertTrue(parsed.metadata.has_attachments)
        self.assertEqual(parsed.metadata.attachment_count, 1)

    def test_path_traversal_filename_sanitized(self):
        parsed = self.parser.parse(_with_attachment("../../etc/passwd"), "a.eml")
        self.assertEqual(parsed.attachments[0].filename, "passwd")

    def test_attachment_only_email_is_not_empty(self):
        msg = MIMEMultipart()
        msg["Subject"] = "Files"
        part = MIMEBase("application", "zip")
        part.set_payload(b"PK\x03\x04")
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename="files.zip")
        msg.attach(part)

        parsed = self.parser.parse(msg.as_bytes(), "files.eml")
        self.assertEqual(parsed.body, "")
        self.assertEqual([a.filename for a in parsed.attachments], ["files.zip"])

    def test_attachment_count_limit(self):
        parser = EmailParser(max_attachment_count=2)
        msg = MIMEMultipart()
        msg["Subject"] = "Many files"
        msg.attach(MIMEText("See attached"))
        for index in range(5):
            part = MIMEBase("application", "octet-stream")
            part.set_payload(b"x")
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=f"file{index}.txt")
            msg.attach(part)

        parsed = parser.parse(msg.as_bytes(), "many.eml")
        self.assertEqual(len(parsed.attachments), 2)

    def test_mime_part_limit(self):
        msg = MIMEMultipart()
        msg["Subject"] = "Bomb"
        for _ in range(MAX_MIME_PARTS + 20):
            msg.attach(MIMEText("part"))

        with self.assertLogs("EmailParser", level="WARNING"):
            parsed = self.parser.parse(msg.as_bytes(), "bomb.eml")
        # The container itself is the first walked part
        self.assertEqual(parsed.body, "part" * (MAX_MIME_PARTS - 1))


class TestEnrichment(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_entities_extracted_into_metadata(self):
        body = (
            "Contact admin@Example.COM or visit https://Login.Example.org/path "
            "from 192.168.1.20 today"
        )
        parsed = self.parser.parse(_simple_raw(body=body), "m.eml")
        metadata = parsed.metadata

        self.assertEqual(metadata.email_addresses, {"admin@Example.COM"})
        self.assertEqual(metadata.urls, {"https://Login.Example.org/path"})
        self.assertEqual(metadata.ip_addresses, {"192.168.1.20"})
        self.assertEqual(metadata.domains, {"example.com", "login.example.org"})

    def test_date_sets_time_slot_and_day(self):
        parsed = self.parser.parse(
            _simple_raw(Date="Mon, 15 Jan 2024 09:30:00 +0000"), "m.eml"
        )
        self.assertEqual(parsed.metadata.time_slot, "morning")
        self.assertEqual(parsed.metadata.day_of_week, "Monday")

    def test_malformed_date_is_logged_not_raised(self):
        with self.assertLogs("EmailParser", level="WARNING") as logs:
            parsed = self.parser.parse(_simple_raw(Date="not a real date"), "m.eml")

        self.assertIsNone(parsed.metadata.time_slot)
        self.assertIsNone(parsed.metadata.day_of_week)
        self.assertTrue(any("Date" in line for line in logs.output))

    def test_reply_and_forward_flags(self):
        parsed = self.parser.parse(_simple_raw(subject="Re: Fwd: Re: budget"), "m.eml")

        self.assertTrue(parsed.metadata.is_reply)
        self.assertFalse(parsed.metadata.is_forward)
        self.assertEqual(parsed.metadata.thread_depth, 3)

    def test_forward_prefix(self):
        parsed = self.parser.parse(_simple_raw(subject="FW: notes"), "m.eml")

        self.assertTrue(parsed.metadata.is_forward)
        self.assertFalse(parsed.metadata.is_reply)
        self.assertEqual(parsed.metadata.thread_depth, 1)

    def test_plain_subject_has_no_thread_depth(self):
        parsed = self.parser.parse(_simple_raw(subject="Hello"), "m.eml")
        self.assertEqual(parsed.metadata.thread_depth, 0)


class TestSecurityIndicators(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_reply_to_on_other_domain_is_flagged(self):
        raw = (
            b"From: CEO <ceo@company.com>\r\n"
            b"Reply-To: attacker@evil.example\r\n"
            b"Subject: Quick favour\r\n"
            b"\r\n"
            b"Are you at your desk?\r\n"
        )
        indicators = self.parser.parse(raw, "m.eml").metadata.security_indicators

        self.assertTrue(indicators.reply_to_mismatch)
        self.assertEqual(indicators.spoofing, ["reply-to-mismatch"])
        self.assertEqual(indicators.risk_score, 20)

    def test_reply_to_on_same_domain_is_not_flagged(self):
        raw = _simple_raw(Reply_To="Helpdesk <helpdesk@Example.com>")
        indicators = self.parser.parse(raw, "m.eml").metadata.security_indicators

        self.assertFalse(indicators.reply_to_mismatch)
        self.assertEqual(indicators.risk_score, 0)

    def test_keywords_and_shortener_domains(self):
        raw = _simple_raw(body="Urgent: verify your login at https://bit.ly/x")
        indicators = self.parser.parse(raw, "m.eml").metadata.security_indicators

        self.assertEqual(indicators.phishing, ["urgent", "verify"])
        self.assertEqual(indicators.suspicious_domains, ["bit.ly"])
        self.assertEqual(indicators.risk_score, 35)

    def test_risky_attachment_extension(self):
        indicators = self.parser.parse(
            _with_attachment("invoice.pdf.EXE"), "m.eml"
        ).metadata.security_indicators

        self.assertEqual(indicators.malware, [".exe"])
        self.assertEqual(indicators.risk_score, 25)

    def test_risk_score_is_capped(self):
        words = [f"word{n}" for n in range(12)]
        parser = EmailParser(threats=ThreatConfig(phishing_keywords=words))
        indicators = parser.parse(_simple_raw(body=" ".join(words)), "m.eml").metadata.security_indicators

        self.assertEqual(len(indicators.phishing), 12)
        self.assertEqual(indicators.risk_score, 100)

    def test_included_in_metadata_dict(self):
        raw = _simple_raw(Reply_To="someone@elsewhere.example")
        data = self.parser.parse(raw, "m.eml").metadata.to_dict()

        self.assertEqual(data["security_indicators"]["spoofing"], ["reply-to-mismatch"])
        self.assertEqual(data["security_indicators"]["risk_score"], 20)


class TestInspection(unittest.TestCase):

    def setUp(self):
        self.parser = EmailParser()

    def test_complete_email_is_valid(self):
        parsed = self.parser.parse(_simple_raw(), "m.eml")
        self.assertEqual(self.parser.validate_email(parsed), [])

    def test_missing_headers_and_content(self):
        errors = self.parser.validate_email(ParsedEmail(headers={}, body=""))
        self.assertEqual(
            errors,
            [
                "Missing From header",
                "Missing Subject header",
                "Email has no body content or attachments",
            ],
        )

    def test_summary(self):
        raw = _simple_raw(subject="Status", body="x" * 300, Reply_To="a@other.example")
        summary = self.parser.get_email_summary(self.parser.parse(raw, "m.eml"))

        self.assertEqual(summary["from"], "sender@example.com")
        self.assertEqual(summary["subject"], "Status")
        self.assertEqual(summary["date"], "Unknown Date")
        self.assertEqual(summary["body_preview"], "x" * 200 + "...")
        self.assertEqual(summary["risk_score"], 20)
        self.assertEqual(summary["word_count"], 1)
        self.assertFalse(summary["has_attachments"])

    def test_summary_placeholders(self):
        summary = self.parser.get_email_summary(ParsedEmail(headers={}, body=""))

        self.assertEqual(summary["from"], "Unknown")
        self.assertEqual(summary["subject"], "No Subject")
        self.assertEqual(summary["body_preview"], "No content")
        self.assertEqual(summary["risk_score"], 0)


class TestHelpers:

    @pytest.mark.parametrize("hour,slot", [
        (0, "night"), (5, "night"), (6, "morning"), (11, "morning"),
        (12, "afternoon"), (17, "afternoon"), (18, "evening"), (21, "evening"), (22, "night"),
    ])
    def test_classify_time_slot(self, hour, slot):
        assert classify_time_slot(hour) == slot

    def test_get_file_extension(self):
        assert get_file_extension("Archive.MBOX") == ".mbox"
        assert get_file_extension("noext") == ""
        assert get_file_extension(".eml") == ".eml"
        assert get_file_extension("") == ""

    def test_parse_email_date_rejects_garbage(self):
        with pytest.raises(MalformedDateError):
            parse_email_date("yesterday-ish")

    def test_parse_file_reads_from_disk(self, tmp_path, parser):
        path = tmp_path / "saved.eml"
        path.write_bytes(_simple_raw(subject="On disk"))

        parsed = parser.parse_file(str(path))
        assert parsed.subject == "On disk"
        assert parsed.source_name == "saved.eml"
