"""Test the ordered policy gate."""

import pytest

from healthbridge.rules.policy import Policy, PolicyGate, default_policies


def with_changes(event, facility_id=None, **payload_changes):
    payload = event.payload.model_copy(update=payload_changes)
    update = {"payload": payload}
    if facility_id is not None:
        update["facility_id"] = facility_id
    return event.model_copy(update=update)


class TestPolicyGate:
    """Evaluation order and violation attribution."""

    @pytest.fixture
    def gate(self, sample_config):
        return PolicyGate.from_config(sample_config)

    def test_all_policies_pass(self, gate, sample_event):
        result = gate.evaluate(sample_event)

        assert result.allowed is True
        assert result.reason == "All policies passed"
        assert result.metadata == {"policies_checked": 3}
        assert result.violated_policy is None

    def test_default_policy_order(self, sample_config):
        names = [p.name for p in default_policies(sample_config)]

        assert names == ["patient-mrn-required", "valid-message-type", "facility-whitelist"]

    def test_first_violation_is_reported_when_all_fail(self, gate, sample_event):
        event = with_changes(sample_event, facility_id="ELSEWHERE", patient_mrn="", message_type="ORU^R01")

        result = gate.evaluate(event)

        assert result.allowed is False
        assert result.violated_policy == "patient-mrn-required"
        assert result.reason == "Patient MRN is required"

    def test_message_type_reported_before_facility(self, gate, sample_event):
        event = with_changes(sample_event, facility_id="ELSEWHERE", message_type="ORU^R01")

        result = gate.evaluate(event)

        assert result.violated_policy == "valid-message-type"
        assert result.reason == "Invalid message type - must be ADT"

    def test_facility_whitelist(self, gate, sample_event):
        result = gate.evaluate(with_changes(sample_event, facility_id="FACILITY_999"))

        assert result.violated_policy == "facility-whitelist"
        assert result.reason == "Facility not in whitelist"

    def test_whitelist_from_config(self, sample_config, sample_event):
        sample_config.policy.facility_whitelist = ["FACILITY_777"]

        result = PolicyGate.from_config(sample_config).evaluate(sample_event)

        assert result.violated_policy == "facility-whitelist"

    def test_evaluation_short_circuits(self, sample_event):
        calls = []

        def recorder(name, outcome):
            def check(event):
                calls.append(name)
                return outcome
            return check

        gate = PolicyGate([
            Policy("first", recorder("first", True), "first failed"),
            Policy("second", recorder("second", False), "second failed"),
            Policy("third", recorder("third", False), "third failed"),
        ])

        result = gate.evaluate(sample_event)

        assert calls == ["first", "second"]
        assert result.violated_policy == "second"

    def test_raising_check_is_a_violation(self, sample_event):
        def explode(event):
            raise KeyError("payload")

        gate = PolicyGate([Policy("fragile", explode, "Fragile check failed")])

        result = gate.evaluate(sample_event)

        assert result.allowed is False
        assert result.violated_policy == "fragile"
        assert result.reason.startswith("Fragile check failed")

    def test_register_appends_in_order(self, sample_event):
        gate = PolicyGate()
        gate.register(Policy("a", lambda e: True, "a"))
        gate.register(Policy("b", lambda e: True, "b"))

        assert [p.name for p in gate.policies] == ["a", "b"]
        assert gate.evaluate(sample_event).metadata == {"policies_checked": 2}

    def test_duplicate_policy_name(self):
        gate = PolicyGate([Policy("a", lambda e: True, "a")])

        with pytest.raises(ValueError):
            gate.register(Policy("a", lambda e: False, "again"))

    def test_empty_gate_allows(self, sample_event):
        result = PolicyGate().evaluate(sample_event)

        assert result.allowed is True
        assert result.metadata == {"policies_checked": 0}
