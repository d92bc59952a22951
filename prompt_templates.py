# prompt_templates.py
"""
Prompt text for the debate: the moderator's opening brief and the
"your turn" suffix appended to mirrored output.

The locale is passed in explicitly; detect_locale() only reads the
environment once, when settings are loaded.
"""
import os
from typing import Mapping, Optional

TEMPLATES = {
    "en": "\n".join([
        "{pro} will argue for, {con} will argue against. Let's explore {topic} together.",
        "",
        "Do not give conclusions yet. List all potentially relevant variables — exhaustive, unranked, uncategorized.",
        "Each variable must include a source and date. Omit any without a source.",
        "",
        "Beyond the direct variables of the topic itself, you must also cover:",
        "- What is changing in the external environment surrounding this topic?",
        "- What forces from adjacent domains could cross over and impact this topic?",
        "",
        "After the exhaustive list, each side adds 5 variables the other side likely missed. "
        "Merge and deduplicate into the final variable set.",
    ]),
    "zh": "\n".join([
        "{pro}作为正方，{con}作为反方，我们一起探讨{topic}。",
        "",
        "先不要给结论。列出所有可能相关的变量，穷举，不排序，不归类。",
        "每个变量标注来源和日期，没有来源的不要写。",
        "",
        "穷举时，除了主题本身的直接变量，还必须覆盖：",
        "- 主题所处的外部环境中，正在发生什么变化？",
        "- 有哪些相邻领域的力量可能跨界影响这个主题？",
        "",
        "穷举完成后，双方各自补充\"对方遗漏的 5 个变量\"，合并去重后作为最终变量集。",
    ]),
}

TURN_PROMPTS = {
    "en": "\n\n--------\nYour turn, {name}. Stay on topic.",
    "zh": "\n\n--------\n请{name}发言，注意不要跑题",
}

MODERATOR_LABELS = {
    "en": "Moderator",
    "zh": "主持人",
}


def detect_locale(environ: Optional[Mapping[str, str]] = None) -> str:
    """Normalized locale from LANG / LC_ALL / LC_MESSAGES, e.g. 'zh-cn'."""
    env = os.environ if environ is None else environ
    lang = env.get("LANG") or env.get("LC_ALL") or env.get("LC_MESSAGES") or ""
    return lang.split(".")[0].replace("_", "-").lower()


def locale_key(locale: str) -> str:
    return "zh" if (locale or "").lower().startswith("zh") else "en"


def build_moderator_message(pro: str, con: str, topic: str, locale: str = "en") -> str:
    return TEMPLATES[locale_key(locale)].format(pro=pro, con=con, topic=topic)


def build_turn_prompt(name: str, locale: str = "en") -> str:
    return TURN_PROMPTS[locale_key(locale)].format(name=name)


def moderator_label(locale: str = "en") -> str:
    return MODERATOR_LABELS[locale_key(locale)]
