"""
LLM judge — scores one account from its context snapshot.

Temperature 0, strict schema, no defaulting: any parse or validation
failure raises JudgmentValidationError to the caller.
"""
import logging

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from expansion_engine.config import SIGNAL_VERSION, LIFT_STATS_VERSION, ENGINE_VERSION
from expansion_engine.database import get_session
from expansion_engine.errors import ConfigurationError, EngineError, JudgmentValidationError, RunStateError
from expansion_engine.models.evaluation import LlmEvaluation
from expansion_engine.pipeline.base import RunStep
from expansion_engine.schemas.judgment import Judgment
from expansion_engine.schemas.snapshot import ContextSnapshot
from expansion_engine.services import llm_client
from expansion_engine.services.run_log import append_run_log

logger = logging.getLogger('pipeline.judge')


def _preview(text, width):
    return text if len(text) <= width else text[:width - 3] + '...'


def parse_judgment(raw_text, domain) -> Judgment:
    try:
        return Judgment.model_validate(llm_client.parse_json_object(raw_text))
    except (ValueError, ValidationError) as e:
        raise JudgmentValidationError(f"Invalid LLM output for {domain}: {e}", raw=raw_text) from e


def evaluate_with_llm(run_id, domain, snapshot: ContextSnapshot, system_prompt, prompt_version) -> Judgment:
    user_message = snapshot.model_dump_json()
    step = RunStep.LLM_EVAL.value

    append_run_log(run_id, 'info', "LLM evaluation input", domain=domain, step=step, detail={
        'evaluation_month': snapshot.evaluation_context.evaluation_month,
        'data_quality_score': snapshot.evaluation_context.data_quality_score,
        'account_name': snapshot.account_profile.account_name,
        'atomic_signals_count': len(snapshot.atomic_signals),
        'historical_signal_stats_count': len(snapshot.historical_signal_stats),
        'input_char_count': len(user_message),
    })

    try:
        raw = llm_client.complete(system_prompt, user_message, temperature=0)
    except ConfigurationError:
        raise
    except Exception as e:
        raise EngineError(f"LLM call failed for {domain}: {e}") from e

    judgment = parse_judgment(raw, domain)

    append_run_log(run_id, 'info', "LLM evaluation output", domain=domain, step=step, detail={
        'expansion_score': judgment.expansion_score,
        'risk_score': judgment.risk_score,
        'recommended_motion': judgment.recommended_motion,
        'evidence_used_count': len(judgment.evidence_used),
        'why_now': _preview(judgment.why_now, 120),
        'reasoning_preview': _preview(judgment.reasoning, 80),
    })

    session = get_session()
    try:
        session.add(LlmEvaluation(
            run_id=run_id,
            domain=domain,
            prompt_version=prompt_version,
            signal_version=SIGNAL_VERSION,
            lift_stats_version=LIFT_STATS_VERSION,
            engine_version=ENGINE_VERSION,
            model_name=llm_client.model_name(),
            expansion_score=judgment.expansion_score,
            risk_score=judgment.risk_score,
            recommended_motion=judgment.recommended_motion,
            why_now=judgment.why_now,
            reasoning=judgment.reasoning,
            evidence_used=[item.model_dump() for item in judgment.evidence_used],
            raw_response=raw,
        ))
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise RunStateError(f"{domain} already has an evaluation in run {run_id}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    return judgment
