"""
Deterministic Rule-Based Classifier

A small decision table: an ordered list of routing rules, each a regex on the
normalized input, required entity keys, an optional context predicate, a
target agent type and a priority. Rules are evaluated highest priority first,
declaration order breaking ties, and the first rule whose predicates all hold
wins.

Confidence of a winning rule:
    0.5 + min(0.3, 0.1 * entity count) + min(0.2, 0.05 * agent keyword hits)
capped at 1.0. No match yields the fallback type at 0.3.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from intentflow.registry.agent import DEFAULT_AGENT_PROFILES, AgentProfile
from intentflow.state.models import AgentContext, RoutingDecision

logger = logging.getLogger(__name__)


BASE_CONFIDENCE = 0.5
ENTITY_WEIGHT = 0.1
ENTITY_BOOST_CAP = 0.3
KEYWORD_WEIGHT = 0.05
KEYWORD_BOOST_CAP = 0.2
NO_MATCH_CONFIDENCE = 0.3

ContextPredicate = Callable[[str, Mapping[str, Any], AgentContext], bool]
ProfileLookup = Callable[[str], AgentProfile | None]


def normalize_input(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return re.sub(r"\s+", " ", text.strip().lower())


@dataclass(frozen=True)
class RoutingRule:
    """One row of the decision table."""

    rule_id: str
    target_agent_type: str
    priority: int
    pattern: re.Pattern[str] | None = None
    required_entities: tuple[str, ...] = ()
    condition: ContextPredicate | None = None
    intent: str = ""

    def matches(
        self,
        normalized: str,
        entities: Mapping[str, Any],
        context: AgentContext,
    ) -> bool:
        if self.pattern is not None and not self.pattern.search(normalized):
            return False
        if any(key not in entities for key in self.required_entities):
            return False
        if self.condition is not None and not self.condition(normalized, entities, context):
            return False
        return True


def _action_is(action: str) -> ContextPredicate:
    return lambda _text, entities, _context: entities.get("action") == action


def _action_in(*actions: str) -> ContextPredicate:
    return lambda _text, entities, _context: entities.get("action") in actions


PHOTO_PATTERN = re.compile(r"照片|图片|拍照|扫描|识别|photo|picture|scan")
IMPORT_PATTERN = re.compile(r"导入|上传|文件|excel|订单|平台|import|upload")


def _default_rules() -> list[RoutingRule]:
    return [
        # Inventory
        RoutingRule(
            rule_id="inventory_consume",
            target_agent_type="inventory",
            priority=10,
            pattern=re.compile(r"(消耗|用了|用掉|减少|used|consumed).*(包|个|瓶|盒|袋|\d)"),
            required_entities=("action", "item_name"),
            condition=_action_is("consume"),
            intent="inventory_consume",
        ),
        RoutingRule(
            rule_id="inventory_add",
            target_agent_type="inventory",
            priority=10,
            pattern=re.compile(r"(添加|增加|买了|购买|add|added|restock).*(包|个|瓶|盒|袋|\d)"),
            required_entities=("action", "item_name"),
            condition=_action_is("add"),
            intent="inventory_add",
        ),
        RoutingRule(
            rule_id="inventory_query",
            target_agent_type="inventory",
            priority=9,
            pattern=re.compile(r"(查询|查看|显示|看看|check|show|how many).*(库存|剩余|还有|stock|left)"),
            required_entities=("action",),
            condition=_action_is("query"),
            intent="inventory_query",
        ),
        RoutingRule(
            rule_id="inventory_photo",
            target_agent_type="inventory",
            priority=8,
            condition=lambda text, _entities, context: (
                context.has_photo or bool(PHOTO_PATTERN.search(text))
            ),
            intent="inventory_photo",
        ),
        # Procurement
        RoutingRule(
            rule_id="procurement_purchase",
            target_agent_type="procurement",
            priority=10,
            pattern=re.compile(r"采购|购买|买|订购|补货|buy|purchase"),
            required_entities=("action",),
            condition=_action_is("purchase"),
            intent="procurement_purchase",
        ),
        RoutingRule(
            rule_id="procurement_import",
            target_agent_type="procurement",
            priority=9,
            condition=lambda text, _entities, context: (
                context.has_file or bool(IMPORT_PATTERN.search(text))
            ),
            intent="procurement_import",
        ),
        RoutingRule(
            rule_id="procurement_recommendation",
            target_agent_type="procurement",
            priority=8,
            pattern=re.compile(r"建议|推荐|采购|补货|购物清单|需要买|recommend|shopping list"),
            intent="procurement_recommendation",
        ),
        # Finance
        RoutingRule(
            rule_id="finance_report",
            target_agent_type="finance",
            priority=10,
            pattern=re.compile(r"报告|汇报|总结|月报|季报|年报|report"),
            required_entities=("action",),
            condition=_action_is("report"),
            intent="finance_report",
        ),
        RoutingRule(
            rule_id="finance_analysis",
            target_agent_type="finance",
            priority=9,
            pattern=re.compile(r"分析|统计|计算|支出|花费|消费|analy[sz]e|spending|expense"),
            required_entities=("action",),
            condition=_action_is("analyze"),
            intent="finance_analysis",
        ),
        RoutingRule(
            rule_id="finance_spending",
            target_agent_type="finance",
            priority=8,
            required_entities=("amount",),
            intent="finance_spending",
        ),
        # Notification
        RoutingRule(
            rule_id="notification_send",
            target_agent_type="notification",
            priority=10,
            pattern=re.compile(r"通知|提醒|告知|发送|推送|notify|remind"),
            required_entities=("action",),
            condition=_action_is("notify"),
            intent="notification_send",
        ),
        # Action-based fallbacks
        RoutingRule(
            rule_id="inventory_by_action",
            target_agent_type="inventory",
            priority=1,
            condition=_action_in("consume", "add", "query"),
            intent="inventory_management",
        ),
        RoutingRule(
            rule_id="procurement_by_action",
            target_agent_type="procurement",
            priority=1,
            condition=_action_in("purchase", "analyze"),
            intent="procurement_management",
        ),
        RoutingRule(
            rule_id="finance_by_action",
            target_agent_type="finance",
            priority=1,
            condition=lambda _text, entities, _context: (
                entities.get("action") == "report" or "amount" in entities
            ),
            intent="financial_analysis",
        ),
    ]


@dataclass
class RuleMatch:
    """Winning rule and the confidence it produced."""

    rule: RoutingRule
    confidence: float
    keyword_hits: int = 0
    entity_count: int = 0


class RuleBasedClassifier:
    """
    Deterministic classifier over an ordered rule table.

    Pure function of (input, entities, context): identical arguments always
    produce the same decision.
    """

    def __init__(
        self,
        rules: Sequence[RoutingRule] | None = None,
        profiles: Mapping[str, AgentProfile] | ProfileLookup | None = None,
        fallback_agent_type: str = "inventory",
    ):
        """
        Args:
            rules: Rule table (the built-in household rules by default)
            profiles: Agent profiles for keyword hits, as a mapping or a
                lookup called on every classification
            fallback_agent_type: Target when no rule matches
        """
        declared = list(rules) if rules is not None else _default_rules()
        # sorted() is stable, so declaration order breaks priority ties.
        self._rules = sorted(declared, key=lambda rule: -rule.priority)
        if profiles is None:
            profiles = DEFAULT_AGENT_PROFILES
        self._profile_for: ProfileLookup = profiles if callable(profiles) else dict(profiles).get
        self._fallback_agent_type = fallback_agent_type

    @property
    def rules(self) -> list[RoutingRule]:
        return list(self._rules)

    def keyword_hits(self, normalized: str, agent_type: str) -> int:
        profile = self._profile_for(agent_type)
        if profile is None:
            return 0
        return sum(1 for keyword in profile.keywords if keyword.lower() in normalized)

    def confidence_for(self, normalized: str, agent_type: str, entities: Mapping[str, Any]) -> float:
        entity_boost = min(ENTITY_BOOST_CAP, ENTITY_WEIGHT * len(entities))
        keyword_boost = min(KEYWORD_BOOST_CAP, KEYWORD_WEIGHT * self.keyword_hits(normalized, agent_type))
        return min(1.0, BASE_CONFIDENCE + entity_boost + keyword_boost)

    def match(
        self,
        user_input: str,
        entities: Mapping[str, Any],
        context: AgentContext | None = None,
    ) -> RuleMatch | None:
        normalized = normalize_input(user_input)
        context = context or AgentContext()
        for rule in self._rules:
            if rule.matches(normalized, entities, context):
                return RuleMatch(
                    rule=rule,
                    confidence=self.confidence_for(normalized, rule.target_agent_type, entities),
                    keyword_hits=self.keyword_hits(normalized, rule.target_agent_type),
                    entity_count=len(entities),
                )
        return None

    def classify(
        self,
        user_input: str,
        entities: Mapping[str, Any],
        context: AgentContext | None = None,
    ) -> RoutingDecision:
        result = self.match(user_input, entities, context)
        if result is None:
            logger.debug(f"No routing rule matched: {user_input[:50]}")
            return RoutingDecision(
                target_agent_type=self._fallback_agent_type,
                confidence=NO_MATCH_CONFIDENCE,
                reasoning="Default fallback - no clear intent detected",
                extracted_entities=dict(entities),
                contextual_info="rule:none",
            )

        rule = result.rule
        return RoutingDecision(
            target_agent_type=rule.target_agent_type,
            confidence=result.confidence,
            reasoning=f"Matched rule {rule.rule_id} with confidence {result.confidence:.2f}",
            extracted_entities=dict(entities),
            suggested_actions=[rule.intent] if rule.intent else [],
            contextual_info=f"rule:{rule.rule_id}",
        )
