"""
Policy orchestrator.

Evaluates content against a policy:
1. Resolve the aggregation strategy named by the policy
2. Dispatch one judge call per rule (parallel or sequential)
3. Aggregate rule results into a PolicyVerdict

It also owns the configured policy, an optional runtime override, rule
mutation, and configuration reload. Policy snapshots are immutable and
swapped under a lock, so an in-flight evaluation always sees a single
consistent policy.
"""

import asyncio
import logging
import threading
import time
from typing import Optional, List, Dict, Any, Mapping, Sequence, Union

from pydantic import ValidationError

from policyjudge.aggregation.models import RuleResult
from policyjudge.aggregation.strategies import available_strategies, resolve_strategy
from policyjudge.config.settings import EngineSettings, JudgeConfig, PolicyJudgeSettings
from policyjudge.engine.models import PolicyVerdict
from policyjudge.engine.validation import validate_policy
from policyjudge.events import EventBus, EventType
from policyjudge.exceptions import PolicyStoreError
from policyjudge.judge.client import JudgeClient
from policyjudge.judge.models import ErrorType, MockResponseSpec
from policyjudge.policy.history import HistorySink, InMemoryHistory
from policyjudge.policy.models import (
    FinalVerdict,
    Policy,
    Rule,
    RuleOperationResult,
    ValidationResult,
    Verdict,
)
from policyjudge.policy.store import PolicyStore

logger = logging.getLogger(__name__)

_RULE_FIELDS = frozenset(Rule.model_fields)


class PolicyOrchestrator:
    """Runs policies against content through a shared JudgeClient.

    Args:
        settings: Loaded settings (default: read from env / policyjudge.yaml).
        policy: Configured policy (default: store, then settings).
        judge_client: Judge client (default: built from settings.judge).
        store: Optional PolicyStore receiving policy mutations.
        history: HistorySink for evaluate_and_record (default: InMemoryHistory).
        events: EventBus for lifecycle notifications (default: the judge
            client's bus, so both components publish to one place).
        mock_mode: Build the default judge client in mock mode.
        mock_responses: Mock responses for the default judge client.
        config_path: policyjudge.yaml location used by reload_config().

    Example:
        orchestrator = PolicyOrchestrator(policy=policy, mock_mode=True)
        verdict = await orchestrator.evaluate("Hello there")
        print(verdict.final_verdict)
    """

    def __init__(
        self,
        settings: Optional[PolicyJudgeSettings] = None,
        policy: Optional[Policy] = None,
        judge_client: Optional[JudgeClient] = None,
        store: Optional[PolicyStore] = None,
        history: Optional[HistorySink] = None,
        events: Optional[EventBus] = None,
        mock_mode: bool = False,
        mock_responses: Optional[Dict[str, MockResponseSpec]] = None,
        config_path: Optional[str] = None,
    ) -> None:
        self._config_path = config_path
        self._settings = settings or PolicyJudgeSettings(_config_path=config_path)
        self._store = store

        if events is None:
            events = judge_client.events if judge_client is not None else EventBus()
        self.events = events

        self.judge = judge_client or JudgeClient.from_config(
            self._settings.judge,
            mock_mode=mock_mode,
            mock_responses=mock_responses,
            events=self.events,
        )
        self.history = history or InMemoryHistory(self._settings.settings.history_size)

        self._lock = threading.Lock()
        self._policy = policy or self._load_policy(self._settings)
        self._runtime_policy: Optional[Policy] = None

        logger.info(
            f"PolicyOrchestrator initialized (policy={self._policy.name}, "
            f"rules={len(self._policy.rules)}, "
            f"strategy={self._policy.evaluation_strategy}, "
            f"parallel={self.engine_settings.parallel_evaluation})"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def settings(self) -> PolicyJudgeSettings:
        return self._settings

    @property
    def engine_settings(self) -> EngineSettings:
        return self._settings.settings

    @property
    def policy(self) -> Policy:
        """The configured policy (ignores any runtime override)."""
        with self._lock:
            return self._policy

    @property
    def store(self) -> Optional[PolicyStore]:
        return self._store

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate(
        self,
        content: str,
        policy: Optional[Policy] = None,
        timeout: Optional[float] = None,
    ) -> PolicyVerdict:
        """Evaluate content against a policy.

        Args:
            content: Text to judge.
            policy: Per-call policy; defaults to the active policy.
            timeout: Deadline in seconds for the whole evaluation; defaults
                to ``settings.evaluation_timeout_seconds``. Rules still
                pending at the deadline are cancelled and count as
                UNCERTAIN.

        Returns:
            PolicyVerdict. Orchestration failures produce an ERROR verdict
            instead of raising.
        """
        start = time.perf_counter()
        policy = policy or self.get_active_policy()
        if timeout is None:
            timeout = self.engine_settings.evaluation_timeout_seconds

        logger.info(
            f"Starting evaluation (policy={policy.name}, content_length={len(content)}, "
            f"rules={len(policy.rules)}, strategy={policy.evaluation_strategy})"
        )
        self.events.emit(
            EventType.EVALUATION_START,
            policy_name=policy.name,
            content_length=len(content),
            rules_count=len(policy.rules),
            strategy=policy.evaluation_strategy,
        )

        try:
            strategy = resolve_strategy(policy.evaluation_strategy)
            results = await self._evaluate_rules(policy.rules, content, timeout)
            aggregation = strategy.aggregate(results, policy)
        except Exception as e:
            latency = _elapsed_ms(start)
            logger.error(
                f"Evaluation failed (policy={policy.name}, error={e}, "
                f"latency={latency:.0f}ms)"
            )
            self.events.emit(
                EventType.EVALUATION_ERROR,
                policy_name=policy.name,
                error=str(e),
                total_latency_ms=latency,
            )
            return PolicyVerdict(
                policy_name=policy.name,
                policy_version=policy.version,
                final_verdict=FinalVerdict.ERROR,
                passed=False,
                error=str(e) or type(e).__name__,
                total_latency_ms=latency,
            )

        latency = _elapsed_ms(start)
        verdict = PolicyVerdict(
            policy_name=policy.name,
            policy_version=policy.version,
            final_verdict=aggregation.final_verdict,
            passed=aggregation.passed,
            rule_results=tuple(results),
            summary=aggregation.summary,
            total_latency_ms=latency,
        )

        logger.info(
            f"Evaluation complete (policy={policy.name}, "
            f"verdict={verdict.final_verdict.value}, passed={verdict.passed}, "
            f"latency={latency:.0f}ms)"
        )
        self.events.emit(
            EventType.EVALUATION_COMPLETE,
            policy_name=policy.name,
            final_verdict=verdict.final_verdict.value,
            passed=verdict.passed,
            total_latency_ms=latency,
        )
        return verdict

    async def evaluate_and_record(
        self,
        content: str,
        policy: Optional[Policy] = None,
    ) -> PolicyVerdict:
        """Evaluate, then hand content, policy snapshot and verdict to history.

        Returns:
            The verdict carrying the evaluation_id assigned by the history sink.
        """
        snapshot = policy or self.get_active_policy()
        verdict = await self.evaluate(content, policy=snapshot)
        evaluation_id = self.history.record(content, snapshot, verdict)
        logger.debug(f"Recorded evaluation {evaluation_id} (policy={snapshot.name})")
        return verdict.with_evaluation_id(evaluation_id)

    async def _evaluate_rules(
        self,
        rules: Sequence[Rule],
        content: str,
        timeout: Optional[float],
    ) -> List[RuleResult]:
        if not rules:
            return []
        if self.engine_settings.parallel_evaluation:
            logger.debug(f"Evaluating {len(rules)} rules in parallel")
            return await self._evaluate_parallel(rules, content, timeout)
        logger.debug(f"Evaluating {len(rules)} rules sequentially")
        return await self._evaluate_sequential(rules, content, timeout)

    async def _evaluate_parallel(
        self,
        rules: Sequence[Rule],
        content: str,
        timeout: Optional[float],
    ) -> List[RuleResult]:
        tasks = [asyncio.ensure_future(self._evaluate_rule(rule, content)) for rule in rules]

        if timeout is None:
            return list(await asyncio.gather(*tasks))

        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(
                f"Evaluation deadline of {timeout}s exceeded, "
                f"cancelling {len(pending)} pending rule(s)"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        return [
            self._deadline_result(rule, timeout) if task in pending else task.result()
            for rule, task in zip(rules, tasks)
        ]

    async def _evaluate_sequential(
        self,
        rules: Sequence[Rule],
        content: str,
        timeout: Optional[float],
    ) -> List[RuleResult]:
        if timeout is None:
            return [await self._evaluate_rule(rule, content) for rule in rules]

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        results: List[RuleResult] = []

        for rule in rules:
            remaining = deadline - loop.time()
            if remaining <= 0:
                results.append(self._deadline_result(rule, timeout))
                continue
            try:
                result = await asyncio.wait_for(self._evaluate_rule(rule, content), remaining)
            except asyncio.TimeoutError:
                logger.warning(f"Evaluation deadline of {timeout}s exceeded at rule '{rule.id}'")
                result = self._deadline_result(rule, timeout)
            results.append(result)

        return results

    async def _evaluate_rule(self, rule: Rule, content: str) -> RuleResult:
        result = RuleResult.from_judge_result(rule, await self.judge.evaluate(rule, content))
        log = logger.info if self.engine_settings.debug_log else logger.debug
        log(
            f"Rule '{rule.id}': {result.verdict.value} "
            f"(confidence={result.confidence:.2f}, latency={result.latency_ms:.0f}ms)"
        )
        return result

    @staticmethod
    def _deadline_result(rule: Rule, timeout: float) -> RuleResult:
        message = f"Evaluation deadline of {timeout}s exceeded"
        return RuleResult(
            rule_id=rule.id,
            verdict=Verdict.UNCERTAIN,
            confidence=0.0,
            reasoning=f"Evaluation failed: {message}",
            action=rule.on_fail,
            weight=1.0 if rule.weight is None else rule.weight,
            latency_ms=timeout * 1000,
            error=message,
            error_type=ErrorType.TIMEOUT,
        )

    # =========================================================================
    # Policy snapshots
    # =========================================================================

    def get_active_policy(self) -> Policy:
        """Runtime override if set, else the configured policy."""
        with self._lock:
            return self._runtime_policy or self._policy

    def set_runtime_policy(self, policy: Policy) -> None:
        with self._lock:
            self._runtime_policy = policy
        logger.info(f"Runtime policy set (name={policy.name}, rules={len(policy.rules)})")

    def clear_runtime_policy(self) -> None:
        with self._lock:
            self._runtime_policy = None
        logger.info("Runtime policy cleared, using configured policy")

    def validate_policy(self, policy: Union[Policy, Mapping[str, Any]]) -> ValidationResult:
        return validate_policy(policy)

    def available_strategies(self) -> List[str]:
        return available_strategies()

    # =========================================================================
    # Rule mutation (configured policy)
    # =========================================================================

    def add_rule(self, rule: Union[Rule, Mapping[str, Any]]) -> RuleOperationResult:
        """Append a rule. Missing description/on_fail/weight take their defaults."""
        try:
            new_rule = rule if isinstance(rule, Rule) else Rule.model_validate(dict(rule))
        except ValidationError as e:
            return RuleOperationResult(success=False, message=f"Invalid rule: {e}")

        with self._lock:
            current = self._policy
            if current.get_rule(new_rule.id) is not None:
                return RuleOperationResult(
                    success=False,
                    message=f"Rule with id '{new_rule.id}' already exists",
                )
            updated = current.model_copy(update={"rules": current.rules + (new_rule,)})
            try:
                self._commit(updated)
            except PolicyStoreError as e:
                return _store_failure(e)

        logger.info(f"Rule added (id={new_rule.id}, total_rules={len(updated.rules)})")
        self.events.emit(
            EventType.RULE_ADDED,
            rule_id=new_rule.id,
            total_rules=len(updated.rules),
        )
        return RuleOperationResult(success=True, rule=new_rule)

    def update_rule(self, rule_id: str, **updates: Any) -> RuleOperationResult:
        """Merge ``updates`` into an existing rule; ``id`` may be renamed."""
        unknown = set(updates) - _RULE_FIELDS
        if unknown:
            return RuleOperationResult(
                success=False,
                message=f"Unknown rule field(s): {', '.join(sorted(unknown))}",
            )

        with self._lock:
            current = self._policy
            existing = current.get_rule(rule_id)
            if existing is None:
                return RuleOperationResult(
                    success=False, message=f"Rule with id '{rule_id}' not found"
                )

            new_id = updates.get("id")
            if new_id and new_id != rule_id and current.get_rule(new_id) is not None:
                return RuleOperationResult(
                    success=False, message=f"Rule with id '{new_id}' already exists"
                )

            try:
                updated_rule = Rule.model_validate({**existing.model_dump(), **updates})
            except ValidationError as e:
                return RuleOperationResult(success=False, message=f"Invalid rule: {e}")

            rules = tuple(updated_rule if r.id == rule_id else r for r in current.rules)
            try:
                self._commit(current.model_copy(update={"rules": rules}))
            except PolicyStoreError as e:
                return _store_failure(e)

        logger.info(f"Rule updated (id={updated_rule.id}, fields={sorted(updates)})")
        self.events.emit(
            EventType.RULE_UPDATED,
            rule_id=updated_rule.id,
            previous_id=rule_id,
            fields=sorted(updates),
        )
        return RuleOperationResult(success=True, rule=updated_rule)

    def delete_rule(self, rule_id: str) -> RuleOperationResult:
        with self._lock:
            current = self._policy
            existing = current.get_rule(rule_id)
            if existing is None:
                return RuleOperationResult(
                    success=False, message=f"Rule with id '{rule_id}' not found"
                )
            rules = tuple(r for r in current.rules if r.id != rule_id)
            try:
                self._commit(current.model_copy(update={"rules": rules}))
            except PolicyStoreError as e:
                return _store_failure(e)

        logger.info(f"Rule deleted (id={rule_id}, remaining_rules={len(rules)})")
        self.events.emit(EventType.RULE_DELETED, rule_id=rule_id, remaining_rules=len(rules))
        return RuleOperationResult(success=True, deleted_rule=existing)

    def _commit(self, policy: Policy) -> None:
        """Persist, then swap. Caller holds the lock."""
        if self._store is not None:
            self._store.save(policy)
        self._policy = policy

    # =========================================================================
    # Configuration
    # =========================================================================

    def reload_config(self, settings: Optional[PolicyJudgeSettings] = None) -> Dict[str, Any]:
        """Re-read settings and the configured policy, then push judge config."""
        settings = settings or PolicyJudgeSettings(_config_path=self._config_path)
        policy = self._load_policy(settings)

        with self._lock:
            self._settings = settings
            self._policy = policy
        self.judge.update_config(**settings.judge.model_dump())

        logger.info(f"Configuration reloaded (policy={policy.name}, rules={len(policy.rules)})")
        self.events.emit(EventType.CONFIG_RELOADED, policy_name=policy.name)
        return self.get_config()

    def update_config(
        self,
        policy: Optional[Mapping[str, Any]] = None,
        judge: Optional[Mapping[str, Any]] = None,
        settings: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Merge partial changes into the policy, judge and engine settings.

        Raises:
            pydantic.ValidationError: If a merged section is invalid; nothing
                is applied in that case.
        """
        sections = []
        with self._lock:
            new_policy = self._policy
            new_judge = self._settings.judge
            new_engine = self._settings.settings

            if policy:
                new_policy = Policy.model_validate({**self._policy.model_dump(), **policy})
                sections.append("policy")
            if judge:
                new_judge = JudgeConfig.model_validate({**new_judge.model_dump(), **judge})
                sections.append("judge")
            if settings:
                new_engine = EngineSettings.model_validate({**new_engine.model_dump(), **settings})
                sections.append("settings")

            if policy:
                self._commit(new_policy)
            self._settings = self._settings.model_copy(
                update={"judge": new_judge, "settings": new_engine}
            )

        if judge:
            self.judge.update_config(**dict(judge))

        logger.info(f"Configuration updated (policy={new_policy.name}, sections={sections})")
        self.events.emit(
            EventType.CONFIG_UPDATED,
            policy_name=new_policy.name,
            sections=sections,
        )
        return self.get_config()

    def get_config(self) -> Dict[str, Any]:
        """Current policy, judge and engine settings (API key omitted)."""
        with self._lock:
            policy = self._policy
            settings = self._settings
        return {
            "policy": policy.to_dict(),
            "judge": settings.judge.model_dump(exclude={"api_key"}),
            "settings": settings.settings.model_dump(),
        }

    def set_mock_mode(
        self,
        enabled: bool,
        responses: Optional[Dict[str, MockResponseSpec]] = None,
    ) -> None:
        self.judge.set_mock_mode(enabled, responses)

    async def health_check(self) -> Dict[str, Any]:
        judge_health = await self.judge.health_check()
        with self._lock:
            policy = self._policy
            runtime_active = self._runtime_policy is not None
        return {
            "healthy": judge_health["healthy"],
            "engine": {
                "policy_name": policy.name,
                "rules_count": len(policy.rules),
                "strategy": policy.evaluation_strategy,
                "parallel_evaluation": self.engine_settings.parallel_evaluation,
                "runtime_policy_active": runtime_active,
            },
            "judge": judge_health,
            "available_strategies": available_strategies(),
        }

    def _load_policy(self, settings: PolicyJudgeSettings) -> Policy:
        if self._store is not None:
            return self._store.load()
        return settings.load_policy()


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _store_failure(error: PolicyStoreError) -> RuleOperationResult:
    """Failed mutation result; the in-memory policy was not swapped."""
    logger.error(f"Failed to persist policy: {error}")
    return RuleOperationResult(success=False, message=f"Failed to persist policy: {error}")
