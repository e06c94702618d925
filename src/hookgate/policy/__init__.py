"""Gate policy: classification, recovery, bypass auditing, remediation and the gatekeeper."""

from hookgate.policy.bypass import (
    BYPASS_METHODS,
    AuditLedger,
    BypassDecision,
    development_mode_enabled,
    evaluate_bypass,
    get_bypass_options,
    is_bypass_trigger,
)
from hookgate.policy.classifier import classify, default_classification, error_text
from hookgate.policy.gatekeeper import GateContext, GateDecision, Gatekeeper, GateStatus
from hookgate.policy.recovery import RecoveryContext, RecoveryEngine
from hookgate.policy.remediation import (
    Remediation,
    assess_impact,
    build_remediation,
    remediation_text,
    render_error_report,
)

__all__ = [
    "BYPASS_METHODS",
    "AuditLedger",
    "BypassDecision",
    "GateContext",
    "GateDecision",
    "GateStatus",
    "Gatekeeper",
    "RecoveryContext",
    "RecoveryEngine",
    "Remediation",
    "assess_impact",
    "build_remediation",
    "classify",
    "default_classification",
    "development_mode_enabled",
    "error_text",
    "evaluate_bypass",
    "get_bypass_options",
    "is_bypass_trigger",
    "remediation_text",
    "render_error_report",
]
