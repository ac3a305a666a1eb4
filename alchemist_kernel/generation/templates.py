"""Rule templates, example prompts and the AI prompt for rule generation."""

import re
from typing import Dict, List

from alchemist_kernel.models.entities import AvailableData
from alchemist_kernel.models.generation import RuleTemplate
from alchemist_kernel.models.rules import RuleType


RULE_TEMPLATES: List[RuleTemplate] = [
    RuleTemplate(
        type=RuleType.CO_RUN,
        pattern=r"(?:run together|co.?run|simultaneous|same time|together)",
        example="Tasks T1 and T2 should run together",
        description="Multiple tasks that must be executed simultaneously",
    ),
    RuleTemplate(
        type=RuleType.LOAD_LIMIT,
        pattern=r"(?:max|limit|maximum|no more than|at most).*(?:tasks?|slots?|load)",
        example="Sales workers should handle at most 3 tasks per phase",
        description="Limit the maximum workload for worker groups",
    ),
    RuleTemplate(
        type=RuleType.SLOT_RESTRICTION,
        pattern=r"(?:common slots?|shared slots?|same slots?|overlap)",
        example="VIP clients need at least 2 common worker slots",
        description="Ensure minimum common availability between groups",
    ),
    RuleTemplate(
        type=RuleType.PHASE_WINDOW,
        pattern=r"(?:phase|phases?|only in|during phase|phase \d)",
        example="Task T5 can only run during phases 2 and 3",
        description="Restrict tasks to specific execution phases",
    ),
    RuleTemplate(
        type=RuleType.PATTERN_MATCH,
        pattern=r"(?:contains?|matches?|pattern|regex|like)",
        example="Tasks containing 'urgent' should get priority treatment",
        description="Apply rules based on text patterns",
    ),
    RuleTemplate(
        type=RuleType.PRECEDENCE_OVERRIDE,
        pattern=r"(?:override|priority|precedence|more important|takes precedence)",
        example="Emergency tasks take precedence over regular rules",
        description="Define rule hierarchy and override behavior",
    ),
]

_COMPILED_TEMPLATES: Dict[RuleType, re.Pattern] = {
    t.type: re.compile(t.pattern, re.I) for t in RULE_TEMPLATES
}

EXAMPLE_PROMPTS: List[Dict[str, object]] = [
    {
        "category": "Co-run Rules",
        "examples": [
            "Tasks T1 and T2 should always run together",
            "Make sure task analysis and task review are executed simultaneously",
            "Project setup and environment config must run at the same time",
        ],
    },
    {
        "category": "Load Limits",
        "examples": [
            "Sales workers should handle at most 3 tasks per phase",
            "Senior developers cannot take more than 5 tasks simultaneously",
            "Support team members are limited to 2 concurrent tasks",
        ],
    },
    {
        "category": "Slot Restrictions",
        "examples": [
            "VIP clients need at least 2 common worker slots",
            "Critical projects require minimum 3 shared availability slots",
            "Enterprise clients must have at least 4 overlapping worker schedules",
        ],
    },
    {
        "category": "Phase Windows",
        "examples": [
            "Task T5 can only run during phases 2 and 3",
            "Testing tasks should only execute in phase 4",
            "Initial setup must happen in phase 1 only",
        ],
    },
    {
        "category": "Pattern Matching",
        "examples": [
            "Tasks containing 'urgent' should get high priority",
            "Any task with 'security' in the name needs special handling",
            "Tasks matching pattern 'PROJ-\\d+' follow project workflow",
        ],
    },
    {
        "category": "Precedence Override",
        "examples": [
            "Emergency tasks take precedence over all other rules",
            "VIP client requests override load limit restrictions",
            "Critical maintenance has priority over regular scheduling",
        ],
    },
]


def template_matches(rule_type: RuleType, text: str) -> bool:
    pattern = _COMPILED_TEMPLATES.get(RuleType(rule_type))
    return bool(pattern and pattern.search(text))


def get_rule_type_suggestions(partial_input: str) -> List[RuleTemplate]:
    """Templates whose pattern, description or example fits a partial request."""
    text = partial_input.lower()
    return [
        t for t in RULE_TEMPLATES
        if _COMPILED_TEMPLATES[t.type].search(text)
        or text in t.description.lower()
        or text in t.example.lower()
    ]


def build_rule_generation_prompt(user_input: str, available_data: AvailableData) -> str:
    task_ids = available_data.task_ids
    task_list = ", ".join(task_ids[:10]) + ("..." if len(task_ids) > 10 else "")
    return f"""You are an expert in business rule generation for resource allocation systems.

CONTEXT:
- System manages allocation of workers to client tasks
- Available Client Groups: {", ".join(available_data.client_groups)}
- Available Worker Groups: {", ".join(available_data.worker_groups)}
- Available Task IDs: {task_list}
- Available Skills: {", ".join(available_data.skills)}

RULE TYPES SUPPORTED:
1. CoRun: Multiple tasks that must run simultaneously
2. LoadLimit: Maximum workload limits for worker groups
3. SlotRestriction: Minimum common availability requirements
4. PhaseWindow: Restrict tasks to specific execution phases (1-5)
5. PatternMatch: Rules based on text patterns/regex
6. PrecedenceOverride: Rule hierarchy and override behavior

USER REQUEST: "{user_input}"

TASK: Analyze the user request and generate a business rule configuration.

RESPONSE FORMAT (JSON):
{{
  "confidence": <0-100 integer>,
  "ruleType": "<coRun|loadLimit|slotRestriction|phaseWindow|patternMatch|precedenceOverride>",
  "ruleName": "<descriptive rule name>",
  "ruleDescription": "<clear explanation of what this rule does>",
  "ruleConfig": {{
    // CoRun: {{ "taskIds": ["T1", "T2"] }}
    // LoadLimit: {{ "workerGroup": "sales", "maxSlotsPerPhase": 3 }}
    // SlotRestriction: {{ "targetType": "client", "groupTag": "VIP", "minCommonSlots": 2 }}
    // PhaseWindow: {{ "taskId": "T5", "allowedPhases": [2, 3] }}
    // PatternMatch: {{ "regex": "urgent", "template": "priority", "parameters": {{}} }}
    // PrecedenceOverride: {{ "overrideType": "priority", "targetRuleIds": ["rule1"], "priority": 1, "conditions": {{}} }}
  }},
  "explanation": "<detailed explanation of the interpretation>",
  "suggestions": ["<alternative interpretation 1>", "<alternative interpretation 2>"],
  "warnings": ["<potential issues or ambiguities>"]
}}

IMPORTANT:
- Use only the provided client groups, worker groups, task IDs, and skills
- Confidence should reflect how clearly the request maps to a specific rule type
- Include warnings for ambiguous or potentially problematic configurations
- Provide alternative interpretations if the request could map to multiple rule types
- Ensure all referenced entities exist in the provided context"""
