"""
Pattern-Based Entity Extraction

Shallow, independent detectors run over the raw input. Each detector either
adds its keys to the entity map or leaves them out entirely; no key is ever
set to None or an empty string.

Keys produced:
- quantity (int) and unit (str)
- action: one of ACTIONS
- item_name (str)
- time_reference: one of TIME_REFERENCES
- amount (float) and currency (str)
"""

import re
from typing import Any


ACTIONS = (
    "consume",
    "add",
    "query",
    "update",
    "purchase",
    "analyze",
    "report",
    "notify",
)

TIME_REFERENCES = (
    "today",
    "yesterday",
    "tomorrow",
    "this_week",
    "last_week",
    "this_month",
    "last_month",
)

UNITS = "包|个|瓶|盒|袋|件|支|条|张|本"

QUANTITY_PATTERN = re.compile(rf"(\d+)\s*({UNITS})")
MONEY_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*[元块钱]")
ITEM_BEFORE_ACTION_PATTERN = re.compile(r"([\u4e00-\u9fff]+)(?=消耗|添加|查询|更新|购买|采购)")
TOKEN_PATTERN = re.compile(r"[\u4e00-\u9fff]+|[a-zA-Z]+(?:\s+[a-zA-Z]+)*")

# action -> (CJK verbs, English verbs). First match wins, so order matters:
# "购买" is an add before it is a purchase.
ACTION_VOCABULARY: list[tuple[str, tuple[str, ...], tuple[str, ...]]] = [
    ("consume", ("消耗", "用了", "用掉", "减少"), ("used", "consumed", "consume")),
    ("add", ("添加", "增加", "买了", "购买"), ("add", "added", "restock", "restocked")),
    ("query", ("查询", "查看", "显示", "看看"), ("check", "show", "how many")),
    ("update", ("更新", "修改", "改变"), ("update", "change")),
    ("purchase", ("采购", "购买", "买", "订购"), ("buy", "purchase", "order")),
    ("analyze", ("分析", "统计", "计算"), ("analyze", "analyse", "statistics")),
    ("report", ("报告", "汇报", "总结"), ("report",)),
    ("notify", ("通知", "提醒", "告知"), ("notify", "remind")),
]


def _verb_pattern(cjk: tuple[str, ...], english: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = [re.escape(word) for word in cjk]
    alternatives += [rf"\b{re.escape(word)}\b" for word in english]
    return re.compile("|".join(alternatives), re.IGNORECASE)


ACTION_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (action, _verb_pattern(cjk, english)) for action, cjk, english in ACTION_VOCABULARY
]

ACTION_WORDS = _verb_pattern(
    tuple(word for _, cjk, _ in ACTION_VOCABULARY for word in cjk),
    tuple(word for _, _, english in ACTION_VOCABULARY for word in english),
)

TIME_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("today", re.compile(r"今天|今日|\btoday\b", re.IGNORECASE)),
    ("yesterday", re.compile(r"昨天|昨日|\byesterday\b", re.IGNORECASE)),
    ("tomorrow", re.compile(r"明天|明日|\btomorrow\b", re.IGNORECASE)),
    ("this_week", re.compile(r"本周|这周|\bthis week\b", re.IGNORECASE)),
    ("last_week", re.compile(r"上周|上星期|\blast week\b", re.IGNORECASE)),
    ("this_month", re.compile(r"本月|这个月|\bthis month\b", re.IGNORECASE)),
    ("last_month", re.compile(r"上月|上个月|\blast month\b", re.IGNORECASE)),
]


class EntityExtractor:
    """Extracts routing entities from free text."""

    def extract(self, text: str) -> dict[str, Any]:
        entities: dict[str, Any] = {}
        if not text:
            return entities

        quantity = QUANTITY_PATTERN.search(text)
        if quantity:
            entities["quantity"] = int(quantity.group(1))
            entities["unit"] = quantity.group(2)

        action = self.extract_action(text)
        if action:
            entities["action"] = action

        item_name = self.extract_item_name(text)
        if item_name:
            entities["item_name"] = item_name

        for name, pattern in TIME_PATTERNS:
            if pattern.search(text):
                entities["time_reference"] = name
                break

        money = MONEY_PATTERN.search(text)
        if money:
            entities["amount"] = float(money.group(1))
            entities["currency"] = "CNY"

        return entities

    def extract_action(self, text: str) -> str | None:
        for name, pattern in ACTION_PATTERNS:
            if pattern.search(text):
                return name
        return None

    def extract_item_name(self, text: str) -> str | None:
        """
        Text directly preceding an action verb, else the longest token that
        is neither an action word nor numeric.
        """
        before_action = ITEM_BEFORE_ACTION_PATTERN.search(text)
        if before_action:
            return before_action.group(1)

        # Action words split tokens so "查看库存" yields "库存".
        stripped = ACTION_WORDS.sub(" ", text)
        candidates = [
            token.strip()
            for token in TOKEN_PATTERN.findall(stripped)
            if len(token.strip()) > 1
        ]
        if not candidates:
            return None
        return max(candidates, key=len)
