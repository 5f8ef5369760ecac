"""Data models for the GMP operator."""
from .meta import (
    LabelSelector,
    LabelSelectorRequirement,
    ObjectMeta,
    OwnerReference,
    ResourceKey,
    SecretKeySelector,
    parse_duration,
)
from .operatorconfig import (
    AlertingSpec,
    AlertmanagerEndpoints,
    Authorization,
    CollectionSpec,
    ExportFilters,
    KubeletScraping,
    ManagedAlertmanagerSpec,
    OperatorConfig,
    RuleEvaluatorSpec,
    SecretOrConfigMap,
    TLSConfig,
)
from .podmonitoring import ClusterPodMonitoring, PodMonitoring, PodMonitoringSpec, ScrapeEndpoint
from .resources import KINDS, KindInfo, MonitoredResource, key_for, key_for_body, parse_resource
from .rules import ClusterRules, GlobalRules, Rule, RuleGroup, Rules, RulesSpec
from .status import CONDITION_CONFIGURATION_CREATE_SUCCESS, Condition, MonitoringStatus

__all__ = [
    "LabelSelector",
    "LabelSelectorRequirement",
    "ObjectMeta",
    "OwnerReference",
    "ResourceKey",
    "SecretKeySelector",
    "parse_duration",
    "AlertingSpec",
    "AlertmanagerEndpoints",
    "Authorization",
    "CollectionSpec",
    "ExportFilters",
    "KubeletScraping",
    "ManagedAlertmanagerSpec",
    "OperatorConfig",
    "RuleEvaluatorSpec",
    "SecretOrConfigMap",
    "TLSConfig",
    "ClusterPodMonitoring",
    "PodMonitoring",
    "PodMonitoringSpec",
    "ScrapeEndpoint",
    "KINDS",
    "KindInfo",
    "MonitoredResource",
    "key_for",
    "key_for_body",
    "parse_resource",
    "ClusterRules",
    "GlobalRules",
    "Rule",
    "RuleGroup",
    "Rules",
    "RulesSpec",
    "CONDITION_CONFIGURATION_CREATE_SUCCESS",
    "Condition",
    "MonitoringStatus",
]
