"""
Rule Generator — natural-language request to a scored, inactive rule.

Flow:
  - Try the AI parser when one is configured
  - Fall back to the rule-based parser on any AI failure, an invalid AI
    config, or AI confidence below the configured minimum
  - Build the rule (inactive, so the user activates it after review)
  - Score it with the confidence scorer

The fallback is silent to the caller apart from ``source``; a result is
always produced.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from uuid import uuid4

import httpx
from pydantic import ValidationError

from alchemist_kernel.generation.ai_client import AIParserError
from alchemist_kernel.generation.parser import RuleBasedRuleParser, RuleParseError, RuleParser
from alchemist_kernel.generation.templates import RULE_TEMPLATES
from alchemist_kernel.models.entities import AvailableData
from alchemist_kernel.models.generation import GenerationSource, ParsedRule, RuleGenerationResult
from alchemist_kernel.models.rules import BusinessRule, ValidationIssue, parse_rule
from alchemist_kernel.rules.validation import validate_rule_config
from alchemist_kernel.scoring.confidence import calculate_confidence_score

logger = logging.getLogger(__name__)

DEFAULT_MIN_AI_CONFIDENCE = 50

ID_PREFIXES = {
    GenerationSource.AI: "ai-rule",
    GenerationSource.RULE_BASED: "nl-rule",
}


def _issues_text(issues: List[ValidationIssue]) -> str:
    return ", ".join(error for issue in issues for error in issue.errors)


def build_rule(parsed: ParsedRule, source: GenerationSource) -> BusinessRule:
    """Materialise a parsed rule. Raises pydantic ValidationError on a bad config."""
    now = datetime.now(timezone.utc)
    payload = dict(parsed.rule_config)
    payload.update({
        "id": f"{ID_PREFIXES[source]}-{uuid4().hex[:12]}",
        "type": parsed.rule_type.value,
        "name": parsed.rule_name,
        "description": parsed.rule_description,
        "isActive": False,
        "createdAt": now,
        "updatedAt": now,
    })
    return parse_rule(payload)


class RuleGenerator:
    def __init__(
        self,
        ai_parser: Optional[RuleParser] = None,
        fallback_parser: Optional[RuleParser] = None,
        min_ai_confidence: int = DEFAULT_MIN_AI_CONFIDENCE,
    ):
        self._ai_parser = ai_parser
        self._fallback_parser = fallback_parser or RuleBasedRuleParser()
        self._min_ai_confidence = min_ai_confidence

    def _try_ai(self, text: str, data: AvailableData) -> Optional[Tuple[ParsedRule, BusinessRule]]:
        if self._ai_parser is None:
            return None
        try:
            parsed = self._ai_parser.parse(text, data)
        except (AIParserError, httpx.HTTPError) as exc:
            logger.warning("AI rule parsing failed, using rule-based parser: %s", exc)
            return None

        issues = validate_rule_config(parsed.rule_type, parsed.rule_config)
        if issues:
            logger.warning(
                "AI produced an invalid %s config (%s), using rule-based parser",
                parsed.rule_type.value, _issues_text(issues),
            )
            return None
        if parsed.confidence < self._min_ai_confidence:
            logger.warning(
                "AI confidence %s below minimum %s, using rule-based parser",
                parsed.confidence, self._min_ai_confidence,
            )
            return None
        try:
            return parsed, build_rule(parsed, GenerationSource.AI)
        except ValidationError:
            logger.warning("AI config could not be turned into a rule, using rule-based parser")
            return None

    def generate(self, user_input: str, available_data: AvailableData) -> RuleGenerationResult:
        text = (user_input or "").strip()
        if not text:
            return RuleGenerationResult(
                success=False,
                error="Please describe the rule you want to create",
                suggestions=[t.example for t in RULE_TEMPLATES],
            )

        attempt = self._try_ai(text, available_data)
        if attempt is not None:
            parsed, rule = attempt
            source = GenerationSource.AI
        else:
            source = GenerationSource.RULE_BASED
            try:
                parsed = self._fallback_parser.parse(text, available_data)
            except RuleParseError as exc:
                return RuleGenerationResult(
                    success=False,
                    source=source,
                    error=str(exc),
                    suggestions=[t.example for t in RULE_TEMPLATES],
                )

            issues = validate_rule_config(parsed.rule_type, parsed.rule_config)
            if issues:
                return RuleGenerationResult(
                    success=False,
                    source=source,
                    confidence=int(parsed.confidence),
                    error=f"Invalid rule configuration: {_issues_text(issues)}",
                    suggestions=parsed.suggestions,
                    warnings=parsed.warnings,
                )
            try:
                rule = build_rule(parsed, source)
            except ValidationError as exc:
                return RuleGenerationResult(
                    success=False,
                    source=source,
                    error=f"Invalid rule configuration: {exc.error_count()} field errors",
                    warnings=parsed.warnings,
                )

        confidence = calculate_confidence_score(
            text, parsed.rule_type, parsed.rule_config, available_data
        )
        return RuleGenerationResult(
            success=True,
            source=source,
            confidence=confidence.overall,
            confidence_result=confidence,
            rule=rule,
            explanation=parsed.explanation,
            suggestions=parsed.suggestions,
            warnings=parsed.warnings,
        )
