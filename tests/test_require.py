"""
Require / RequireAny / RequireAll evaluator tests.
"""

import os
import sys
import logging
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.require import RequireEvaluator, check_require
from core.models import (
    RequestSession, VERDICT_ALLOWED, VERDICT_DENIED, VERDICT_NOT_APPLICABLE,
)
from parsers.htaccess_parser import parse


PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATASETS_DIR = os.path.join(PROJECT_ROOT, "datasets")


def require(text, client_ip, session=None):
    return check_require(parse(text).directives, client_ip, session)


class TestSingleRules:

    @pytest.mark.parametrize("client_ip", ["0.0.0.0", "10.1.2.3", "255.255.255.255"])
    def test_all_granted(self, client_ip):
        assert require("Require all granted", client_ip).verdict == VERDICT_ALLOWED

    @pytest.mark.parametrize("client_ip", ["0.0.0.0", "10.1.2.3", "255.255.255.255"])
    def test_all_denied(self, client_ip):
        decision = require("Require all denied", client_ip)
        assert decision.verdict == VERDICT_DENIED
        assert decision.status == 403

    def test_ip(self):
        assert require("Require ip 192.168.1.0/24", "192.168.1.9").allowed
        assert require("Require ip 192.168.1.0/24", "192.168.2.9").denied

    def test_not_ip_is_negation(self):
        assert require("Require not ip 10.0.0.0/8", "10.9.9.9").denied
        assert require("Require not ip 10.0.0.0/8", "11.9.9.9").allowed

    def test_ip_list_with_bad_token(self):
        assert require("Require ip nonsense 10.0.0.0/8", "10.9.9.9").allowed
        assert require("Require not ip nonsense", "10.9.9.9").allowed


class TestContainers:

    def test_require_any(self):
        text = "<RequireAny>\nRequire ip 10.0.0.0/8\nRequire ip 192.168.0.0/16\n</RequireAny>"
        assert require(text, "10.1.1.1").allowed
        assert require(text, "192.168.3.3").allowed
        assert require(text, "172.16.0.1").denied

    def test_require_all(self):
        text = "<RequireAll>\nRequire ip 10.0.0.0/8\nRequire not ip 10.66.0.0/16\n</RequireAll>"
        assert require(text, "10.1.1.1").allowed
        assert require(text, "10.66.1.1").denied
        assert require(text, "11.1.1.1").denied

    def test_nested_dataset(self):
        with open(os.path.join(DATASETS_DIR, "require_nested.htaccess"), encoding="utf-8") as f:
            directives = parse(f.read()).directives
        assert check_require(directives, "10.1.2.3").allowed
        assert check_require(directives, "192.168.5.20").allowed
        # in the outer range but not in either inner one
        assert check_require(directives, "10.2.0.1").denied
        # excluded by Require not ip
        assert check_require(directives, "10.66.1.1").denied
        assert check_require(directives, "8.8.8.8").denied

    def test_deep_nesting(self):
        text = "\n".join([
            "<RequireAny>",
            "<RequireAll>",
            "<RequireAny>",
            "Require ip 10.1.0.0/16",
            "</RequireAny>",
            "Require not ip 10.1.1.0/24",
            "</RequireAll>",
            "Require ip 172.16.0.0/12",
            "</RequireAny>",
        ])
        assert require(text, "10.1.2.3").allowed
        assert require(text, "10.1.1.3").denied
        assert require(text, "172.16.4.4").allowed

    def test_empty_require_all_grants(self):
        assert require("<RequireAll>\n</RequireAll>", "1.2.3.4").allowed

    def test_empty_require_any_denies(self):
        assert require("<RequireAny>\n</RequireAny>", "1.2.3.4").denied

    def test_valid_user_inside_require_all_is_skipped(self):
        text = "<RequireAll>\nRequire valid-user\nRequire ip 10.0.0.0/8\n</RequireAll>"
        assert require(text, "10.0.0.1").allowed
        assert require(text, "11.0.0.1").denied


class TestTopLevel:

    def test_implicit_or(self):
        text = "Require all denied\nRequire ip 10.0.0.0/8"
        assert require(text, "10.0.0.1").allowed
        assert require(text, "11.0.0.1").denied

    def test_not_applicable(self):
        assert require("Order Deny,Allow\nDeny from all", "10.0.0.1").verdict == VERDICT_NOT_APPLICABLE
        assert check_require([], "10.0.0.1").verdict == VERDICT_NOT_APPLICABLE

    def test_valid_user_alone_is_not_applicable(self):
        assert require("AuthType Basic\nRequire valid-user", "10.0.0.1").verdict == VERDICT_NOT_APPLICABLE

    @pytest.mark.parametrize("client_ip", [None, "", "bogus", "1.2.3"])
    def test_unparseable_client_fails_closed(self, client_ip):
        session = RequestSession(client_ip=client_ip)
        decision = require("Require all granted", client_ip, session)
        assert decision.denied
        assert session.status == 403

    def test_allowed_leaves_session_alone(self):
        session = RequestSession(client_ip="10.0.0.1")
        require("Require all granted", "10.0.0.1", session)
        assert session.status == 200


class TestPrecedence:

    def test_require_wins_over_order_with_warning(self, caplog):
        text = "Order Deny,Allow\nDeny from all\nRequire all granted"
        with caplog.at_level(logging.WARNING, logger="htgate.require"):
            decision = require(text, "10.0.0.1")
        assert decision.allowed
        assert "Require takes precedence" in caplog.text

    def test_no_warning_without_legacy_rules(self, caplog):
        with caplog.at_level(logging.WARNING, logger="htgate.require"):
            require("Require all granted", "10.0.0.1")
        assert "precedence" not in caplog.text

    def test_injected_logger(self):
        messages = []

        class Collect(logging.Handler):
            def emit(self, record):
                messages.append(record.getMessage())

        log = logging.getLogger("test.injected.require")
        log.addHandler(Collect())
        log.propagate = False
        directives = parse("Allow from all\nRequire ip 10.0.0.0/8").directives
        RequireEvaluator(logger=log).evaluate(directives, "10.0.0.1")
        assert any("Require takes precedence" in m for m in messages)
