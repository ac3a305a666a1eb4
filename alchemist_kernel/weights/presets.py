"""Named weight profiles (0-10 scale) and the ranking presets offered alongside them."""

from typing import Dict, List, Optional

from alchemist_kernel.models.weights import (
    CRITERIA,
    PresetDefinition,
    PresetProfile,
    PriorityWeights,
    WeightDifference,
)


PRESET_PROFILES: Dict[PresetProfile, PresetDefinition] = {
    PresetProfile.MAXIMIZE_FULFILLMENT: PresetDefinition(
        id=PresetProfile.MAXIMIZE_FULFILLMENT,
        name="Maximize Fulfillment",
        description="Focus on completing as many requested tasks as possible",
        weights=PriorityWeights(
            fairness=4, priority_level=7, task_fulfillment=9, worker_utilization=5, constraints=8,
        ),
        use_case="Client-focused organizations, service delivery teams",
        benefits=[
            "Maximizes client satisfaction",
            "High task completion rates",
            "Clear priority-based allocation",
            "Strong rule enforcement",
        ],
        considerations=[
            "May lead to uneven worker distribution",
            "Lower emphasis on work-life balance",
            "Potential for worker overload",
        ],
    ),
    PresetProfile.FAIR_DISTRIBUTION: PresetDefinition(
        id=PresetProfile.FAIR_DISTRIBUTION,
        name="Fair Distribution",
        description="Emphasize equal opportunities and balanced workload distribution",
        weights=PriorityWeights(
            fairness=9, priority_level=4, task_fulfillment=6, worker_utilization=6, constraints=7,
        ),
        use_case="HR-conscious organizations, team collaboration environments",
        benefits=[
            "Equal opportunities for all workers",
            "Balanced workload distribution",
            "Improved team morale",
            "Sustainable work practices",
        ],
        considerations=[
            "May not prioritize urgent tasks",
            "Could reduce overall efficiency",
            "Less focus on client priorities",
        ],
    ),
    PresetProfile.MINIMIZE_WORKLOAD: PresetDefinition(
        id=PresetProfile.MINIMIZE_WORKLOAD,
        name="Minimize Workload",
        description="Optimize for efficiency and worker well-being",
        weights=PriorityWeights(
            fairness=7, priority_level=4, task_fulfillment=5, worker_utilization=9, constraints=8,
        ),
        use_case="Efficiency-focused teams, sustainable work environments",
        benefits=[
            "Optimal resource utilization",
            "Reduced worker stress",
            "Higher productivity per hour",
            "Better work-life balance",
        ],
        considerations=[
            "May delay some client requests",
            "Lower priority responsiveness",
            "Could impact urgent deliverables",
        ],
    ),
    PresetProfile.CONSTRAINT_STRICT: PresetDefinition(
        id=PresetProfile.CONSTRAINT_STRICT,
        name="Constraint Strict",
        description="Strictly enforce all business rules and constraints",
        weights=PriorityWeights(
            fairness=6, priority_level=6, task_fulfillment=5, worker_utilization=4, constraints=10,
        ),
        use_case="Regulated industries, complex compliance requirements",
        benefits=[
            "Zero rule violations",
            "Predictable outcomes",
            "Compliance guaranteed",
            "Risk mitigation",
        ],
        considerations=[
            "May reduce flexibility",
            "Could limit optimization",
            "Potential efficiency trade-offs",
        ],
    ),
    PresetProfile.BALANCED_APPROACH: PresetDefinition(
        id=PresetProfile.BALANCED_APPROACH,
        name="Balanced Approach",
        description="Equal weight to all criteria for comprehensive optimization",
        weights=PriorityWeights(
            fairness=6, priority_level=6, task_fulfillment=6, worker_utilization=6, constraints=6,
        ),
        use_case="General purpose, exploratory analysis, mixed priorities",
        benefits=[
            "No extreme biases",
            "Considers all factors",
            "Safe starting point",
            "Easy to understand",
        ],
        considerations=[
            "May lack focus",
            "Could be suboptimal for specific needs",
            "Less specialized outcomes",
        ],
    ),
    PresetProfile.PRIORITY_DRIVEN: PresetDefinition(
        id=PresetProfile.PRIORITY_DRIVEN,
        name="Priority Driven",
        description="Heavily emphasize client priority levels and urgent tasks",
        weights=PriorityWeights(
            fairness=4, priority_level=9, task_fulfillment=7, worker_utilization=4, constraints=6,
        ),
        use_case="Executive support, crisis management, VIP client services",
        benefits=[
            "Clear priority hierarchy",
            "VIP client satisfaction",
            "Fast urgent response",
            "Executive alignment",
        ],
        considerations=[
            "May neglect lower priority items",
            "Uneven worker distribution",
            "Potential fairness issues",
        ],
    ),
}


RANKING_PRESETS: List[Dict] = [
    {
        "name": "Balanced Priority",
        "description": "Equal importance to all criteria",
        "ranking": ["fairness", "priority_level", "task_fulfillment", "worker_utilization", "constraints"],
    },
    {
        "name": "Client-First",
        "description": "Prioritize client satisfaction and task completion",
        "ranking": ["priority_level", "task_fulfillment", "constraints", "fairness", "worker_utilization"],
    },
    {
        "name": "Worker-Focused",
        "description": "Emphasize fair workload and efficient utilization",
        "ranking": ["fairness", "worker_utilization", "constraints", "task_fulfillment", "priority_level"],
    },
    {
        "name": "Rule-Strict",
        "description": "Enforce constraints above all other considerations",
        "ranking": ["constraints", "fairness", "priority_level", "task_fulfillment", "worker_utilization"],
    },
    {
        "name": "Efficiency-Driven",
        "description": "Maximize task completion and worker productivity",
        "ranking": ["task_fulfillment", "worker_utilization", "priority_level", "constraints", "fairness"],
    },
]


def get_preset(profile: PresetProfile) -> PresetDefinition:
    """Look up a preset; ``custom`` has no definition and raises KeyError."""
    return PRESET_PROFILES[PresetProfile(profile)]


def list_presets() -> List[PresetDefinition]:
    return list(PRESET_PROFILES.values())


def get_ranking_preset(name: str) -> Optional[List[str]]:
    for preset in RANKING_PRESETS:
        if preset["name"] == name:
            return list(preset["ranking"])
    return None


def match_preset(weights: PriorityWeights, tolerance: float = 1e-9) -> Optional[PresetProfile]:
    """The preset whose weights equal ``weights``, if any."""
    values = weights.as_list()
    for profile, preset in PRESET_PROFILES.items():
        if all(abs(a - b) <= tolerance for a, b in zip(values, preset.weights.as_list())):
            return profile
    return None


def compare_weights(first: PriorityWeights, second: PriorityWeights) -> List[WeightDifference]:
    """Criteria on which ``first`` differs from ``second`` by at least one point."""
    differences = []
    for key in CRITERIA:
        diff = getattr(first, key) - getattr(second, key)
        if abs(diff) >= 1:
            differences.append(WeightDifference(
                criterion=key,
                diff=abs(diff),
                direction="higher" if diff > 0 else "lower",
            ))
    return differences
