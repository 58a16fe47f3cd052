# main.py

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from constants import VERSION, CancellationPolicy, FlowVariant, GlucoseUnit
from engine import AssessmentEngine, to_jsonable
from handover import format_handover_text
from models import EngineConfig, InvalidAnswerError, PatientContextLockedError, new_id
from protocols import SCENARIO_NAMES

# --- 1. CONFIGURATION & LOGGING ---
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("pediagps-api")

app = FastAPI(
    title="PediaGPS API",
    version=VERSION,
    description="Clinical Assessment GPS for Pediatric Emergencies. \n\n"
                "**WARNING**: Decision Support Tool Only. Not for autonomous clinical use.",
    contact={"name": "Clinical Validation Team", "email": "safety@pediagps.org"},
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@dataclass
class SessionSlot:
    engine: AssessmentEngine
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    advance_handle: Optional[asyncio.TimerHandle] = None

    def cancel_advance(self) -> None:
        if self.advance_handle is not None:
            self.advance_handle.cancel()
            self.advance_handle = None


# In-memory only: sessions are not persisted or shared between workers
SESSIONS: Dict[str, SessionSlot] = {}


@app.get("/")
def read_root():
    return {"status": "active", "message": "PediaGPS API is running successfully!"}

@app.get("/health")
def health_check():
    """K8s/AWS Health Probe"""
    return {"status": "active", "version": VERSION, "module": "pediagps-assessment-engine",
            "sessions": len(SESSIONS)}


# --- 2. STRICT INPUT SCHEMA (The Guardrails) ---
class SessionRequest(BaseModel):
    flow_variant: FlowVariant = Field(default=FlowVariant.ABCDE)
    ack_delay_seconds: float = Field(0.3, ge=0.0, le=5.0, description="Delay before the flow advances")
    cancellation_policy: CancellationPolicy = Field(default=CancellationPolicy.REMOVE)
    lock_skip_in_critical_phases: bool = Field(True)

    model_config = {
        "json_schema_extra": {
            "example": {"flow_variant": "branching", "ack_delay_seconds": 0.3, "cancellation_policy": "remove"}
        }
    }

class PatientRequest(BaseModel):
    age_years: int = Field(0, ge=0, le=18, description="Completed years")
    age_months: int = Field(0, ge=0, le=11, description="Additional months")
    weight_kg: float = Field(0.0, ge=0.0, le=150.0, description="0 = not measured, estimate from age")
    glucose_unit: GlucoseUnit = Field(default=GlucoseUnit.MMOL_L)

    model_config = {
        "json_schema_extra": {
            "example": {"age_years": 2, "age_months": 6, "weight_kg": 12.5, "glucose_unit": "mmol/L"}
        }
    }

class AnswerRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    # bool, number, option value or list of option values; null = skip
    answer: Any = Field(None)

    model_config = {
        "json_schema_extra": {"example": {"question_id": "heart_rate", "answer": 190}}
    }

class ScenarioRequest(BaseModel):
    name: str = Field(..., description=f"One of: {', '.join(SCENARIO_NAMES)}")

class EscalateRequest(BaseModel):
    reason: str = Field("", max_length=200)

class ModuleRequestBody(BaseModel):
    intervention_id: Optional[str] = Field(None)

class ModuleCallbackRequest(BaseModel):
    outcome: str = Field(..., description="resolved | no_response | overload | access_requested | referral | dismissed")
    intervention_id: Optional[str] = Field(None)


# --- 3. EXPLICIT RESPONSE SCHEMA (The Contract) ---
class StateResponse(BaseModel):
    session_id: str
    ok: bool = True
    result: Optional[Any] = None
    state: Dict[str, Any]

class AnswerResponse(BaseModel):
    session_id: str
    accepted: bool
    suppressed: bool = False
    action: Optional[Dict[str, Any]] = None
    finding: Optional[Dict[str, Any]] = None
    interventions: List[Dict[str, Any]] = Field(default_factory=list)
    state: Dict[str, Any]


# --- 4. SESSION PLUMBING ---

def _slot(session_id: str) -> SessionSlot:
    slot = SESSIONS.get(session_id)
    if slot is None:
        raise HTTPException(status_code=404, detail=f"Unknown session '{session_id}'")
    return slot

def _schedule_advance(slot: SessionSlot) -> None:
    """Applies the pending advance after the acknowledgement delay."""
    engine = slot.engine
    if not engine.pending_advance:
        return
    slot.cancel_advance()

    def _apply():
        slot.advance_handle = None
        engine.apply_pending_advance()

    loop = asyncio.get_running_loop()
    slot.advance_handle = loop.call_later(engine.config.ack_delay_seconds, _apply)

async def _locked(session_id: str, operation: Callable[[AssessmentEngine], Any]) -> Any:
    slot = _slot(session_id)
    async with slot.lock:
        try:
            return operation(slot.engine)
        except HTTPException:
            raise
        except PatientContextLockedError as e:
            logger.warning(f"Patient edit refused: {str(e)}")
            raise HTTPException(status_code=409, detail=str(e))
        except (ValueError, TypeError) as e:
            # InvalidAnswerError, DataTypeError and bad enum values
            logger.warning(f"Clinical Validation Error: {str(e)}")
            raise HTTPException(status_code=422, detail=f"Clinical Validation Error: {str(e)}")
        except Exception as e:
            logger.error(f"Internal Engine Failure: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail="Internal Assessment Engine Error")

def _state(session_id: str, engine: AssessmentEngine, ok: bool = True, result: Any = None) -> Dict[str, Any]:
    return {"session_id": session_id, "ok": ok, "result": to_jsonable(result), "state": engine.snapshot()}


# --- 5. ENDPOINTS ---

@app.post("/sessions", response_model=StateResponse, status_code=201)
async def create_session(request: Optional[SessionRequest] = None):
    request = request or SessionRequest()
    try:
        config = EngineConfig(
            flow_variant=request.flow_variant,
            ack_delay_seconds=request.ack_delay_seconds,
            cancellation_policy=request.cancellation_policy,
            lock_skip_in_critical_phases=request.lock_skip_in_critical_phases,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Invalid configuration: {str(e)}")
    session_id = new_id("session")
    SESSIONS[session_id] = SessionSlot(AssessmentEngine(config))
    logger.info(f"Session {session_id} created ({config.flow_variant.value} flow)")
    return _state(session_id, SESSIONS[session_id].engine)

@app.get("/sessions/{session_id}", response_model=StateResponse)
async def get_session(session_id: str):
    return await _locked(session_id, lambda engine: _state(session_id, engine))

@app.post("/sessions/{session_id}/patient", response_model=StateResponse)
async def update_patient(session_id: str, patient: PatientRequest):
    def op(engine):
        result = engine.update_patient(**patient.model_dump())
        return _state(session_id, engine, result=result)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/start", response_model=StateResponse)
async def start_assessment(session_id: str):
    return await _locked(session_id, lambda engine: _state(session_id, engine, result=engine.start_assessment()))

@app.post("/sessions/{session_id}/answer", response_model=AnswerResponse)
async def submit_answer(session_id: str, request: AnswerRequest):
    slot = _slot(session_id)

    def op(engine):
        outcome = engine.submit_answer(request.question_id, request.answer)
        _schedule_advance(slot)
        return {
            "session_id": session_id,
            "accepted": outcome.accepted,
            "suppressed": outcome.suppressed,
            "action": to_jsonable(outcome.action),
            "finding": to_jsonable(outcome.finding),
            "interventions": to_jsonable(outcome.interventions),
            "state": engine.snapshot(),
        }
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/skip", response_model=StateResponse)
async def skip_question(session_id: str):
    slot = _slot(session_id)

    def op(engine):
        ok = engine.skip()
        _schedule_advance(slot)
        return _state(session_id, engine, ok=ok)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/back", response_model=StateResponse)
async def go_back(session_id: str):
    slot = _slot(session_id)

    def op(engine):
        ok = engine.go_back()
        if ok:
            slot.cancel_advance()
        return _state(session_id, engine, ok=ok)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/scenario", response_model=StateResponse)
async def start_scenario(session_id: str, request: ScenarioRequest):
    def op(engine):
        plan = engine.start_scenario(request.name)
        return _state(session_id, engine, ok=plan is not None, result=plan)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/actions/dismiss", response_model=StateResponse)
async def dismiss_action(session_id: str):
    def op(engine):
        engine.dismiss_action()
        return _state(session_id, engine)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/help", response_model=StateResponse)
async def call_for_help(session_id: str):
    def op(engine):
        engine.call_for_help()
        return _state(session_id, engine)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/new-case", response_model=StateResponse)
async def new_case(session_id: str):
    slot = _slot(session_id)

    def op(engine):
        slot.cancel_advance()
        engine.new_case()
        return _state(session_id, engine)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/interventions/{intervention_id}/complete", response_model=StateResponse)
async def complete_intervention(session_id: str, intervention_id: str):
    def op(engine):
        known = engine.interventions.get(intervention_id) is not None
        request = engine.complete_intervention(intervention_id)
        return _state(session_id, engine, ok=known, result=request)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/interventions/{intervention_id}/escalate", response_model=StateResponse)
async def escalate_intervention(session_id: str, intervention_id: str, request: Optional[EscalateRequest] = None):
    reason = request.reason if request else ""

    def op(engine):
        known = engine.interventions.get(intervention_id) is not None
        chained = engine.escalate_intervention(intervention_id, reason)
        return _state(session_id, engine, ok=known, result=chained)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/interventions/{intervention_id}/cancel", response_model=StateResponse)
async def cancel_intervention(session_id: str, intervention_id: str):
    return await _locked(session_id, lambda engine: _state(
        session_id, engine, ok=engine.cancel_intervention(intervention_id)))

@app.post("/sessions/{session_id}/interventions/{intervention_id}/reassess", response_model=StateResponse)
async def request_reassessment(session_id: str, intervention_id: str):
    def op(engine):
        request = engine.request_reassessment(intervention_id)
        return _state(session_id, engine, ok=request is not None, result=request)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/modules/{module_name}/open", response_model=StateResponse)
async def open_module(session_id: str, module_name: str, request: Optional[ModuleRequestBody] = None):
    intervention_id = request.intervention_id if request else None

    def op(engine):
        opened = engine.open_module(module_name, intervention_id)
        return _state(session_id, engine, ok=opened is not None, result=opened)
    return await _locked(session_id, op)

@app.post("/sessions/{session_id}/modules/{module_name}/callback", response_model=StateResponse)
async def module_callback(session_id: str, module_name: str, request: ModuleCallbackRequest):
    def op(engine):
        follow_up = engine.module_callback(module_name, request.outcome, request.intervention_id)
        return _state(session_id, engine, result=follow_up)
    return await _locked(session_id, op)

@app.get("/sessions/{session_id}/handover")
async def get_handover(session_id: str, text: bool = False):
    def op(engine):
        summary = engine.handover()
        if text:
            return {"session_id": session_id, "text": format_handover_text(summary)}
        return {"session_id": session_id, "handover": summary}
    return await _locked(session_id, op)

@app.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    slot = _slot(session_id)
    slot.cancel_advance()
    SESSIONS.pop(session_id, None)
    logger.info(f"Session {session_id} closed")
    return {"session_id": session_id, "closed": True}


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API with uvicorn (`pediagps-api` console script)."""
    import uvicorn
    logger.info(f"Starting PediaGPS API on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    serve()
