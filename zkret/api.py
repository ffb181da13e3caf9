"""
HTTP driver for the protocol engine.

Participants authenticate with a password: the identity keypair and the
key-exchange keypair are both re-derived from it on every request, so the
server never stores secret material.

Run with: uvicorn zkret.api:app
"""

from typing import NoReturn, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

from zkret.config import load_settings
from zkret.crypto import KeyPair, X25519KeyExchange
from zkret.engine import PhasePolicy, ProtocolEngine
from zkret.errors import (
  AlreadyChosen,
  CryptoError,
  NotFound,
  ProtocolViolation,
  SerializationError,
  StorageError,
  StorageTimeout,
  TargetNotFound,
  ZkretError,
)
from zkret.proofs import SignatureProofProvider
from zkret.storage import FileRecordStore

app = FastAPI(title="ZKret Santa API")

_engine: Optional[ProtocolEngine] = None


def get_engine() -> ProtocolEngine:
  global _engine
  if _engine is None:
    settings = load_settings()
    store = FileRecordStore(
      settings.store_dir,
      confirm_attempts=settings.confirm_attempts,
      confirm_interval=settings.confirm_interval,
    )
    _engine = ProtocolEngine(
      store,
      SignatureProofProvider(),
      X25519KeyExchange(),
      policy=PhasePolicy(settings.phase_policy),
    )
  return _engine


def http_status(e: ZkretError) -> int:
  if isinstance(e, StorageTimeout):
    return 504
  if isinstance(e, StorageError):
    return 502
  if isinstance(e, (NotFound, TargetNotFound)):
    return 404
  if isinstance(e, AlreadyChosen):
    return 409
  if isinstance(e, ProtocolViolation):
    return 400
  if isinstance(e, (CryptoError, SerializationError)):
    return 422
  return 500


def _fail(e: ZkretError) -> NoReturn:
  raise HTTPException(status_code=http_status(e), detail=e.render())


# --------------------------
# Request models
# --------------------------

class PasswordRequest(BaseModel):
  password: str

class ChoiceRequest(BaseModel):
  password: str
  chosen_public_key: str

class RevealRequest(BaseModel):
  password: str
  info: str


# --------------------------
# Endpoints
# --------------------------

@app.get("/status")
def get_status(engine: ProtocolEngine = Depends(get_engine)):
  try:
    engine.refresh()
    return engine.status()
  except ZkretError as e:
    _fail(e)


@app.get("/choices")
def get_choices(engine: ProtocolEngine = Depends(get_engine)):
  try:
    engine.refresh()
    return {"available": [pk.hex() for pk in engine.available_choices()]}
  except ZkretError as e:
    _fail(e)


@app.get("/participants/{public_key}/santa")
def get_has_santa(public_key: str, engine: ProtocolEngine = Depends(get_engine)):
  try:
    key = bytes.fromhex(public_key)
  except ValueError:
    raise HTTPException(status_code=400, detail="public key must be hex")
  try:
    engine.refresh()
    return {"public_key": public_key, "has_santa": engine.has_santa(key)}
  except ZkretError as e:
    _fail(e)


@app.post("/enter")
def enter(req: PasswordRequest, engine: ProtocolEngine = Depends(get_engine)):
  keypair = KeyPair.from_password(req.password)
  try:
    record = engine.enter(keypair)
  except ZkretError as e:
    _fail(e)
  return {"status": "ok", "public_key": keypair.public_key.hex(), "record": record.content_address}


@app.post("/choice")
def choose(req: ChoiceRequest, engine: ProtocolEngine = Depends(get_engine)):
  try:
    chosen = bytes.fromhex(req.chosen_public_key)
  except ValueError:
    raise HTTPException(status_code=400, detail="chosen_public_key must be hex")
  keypair = KeyPair.from_password(req.password)
  kx_pair = engine.key_exchange.from_password(req.password)
  try:
    record = engine.choice(keypair, chosen, kx_pair)
  except ZkretError as e:
    _fail(e)
  return {"status": "ok", "chosen": req.chosen_public_key, "record": record.content_address}


@app.post("/reveal")
def reveal(req: RevealRequest, engine: ProtocolEngine = Depends(get_engine)):
  keypair = KeyPair.from_password(req.password)
  kx_pair = engine.key_exchange.from_password(req.password)
  try:
    engine.refresh()
    santa_kx = engine.santa_key_exchange_public_key(keypair.public_key)
    record = engine.reveal(keypair, req.info, kx_pair, santa_kx)
  except ZkretError as e:
    _fail(e)
  return {"status": "ok", "record": record.content_address}


@app.post("/santee")
def santee(req: PasswordRequest, engine: ProtocolEngine = Depends(get_engine)):
  keypair = KeyPair.from_password(req.password)
  kx_pair = engine.key_exchange.from_password(req.password)
  try:
    engine.refresh()
    info = engine.santee_revealed_info(keypair, kx_pair)
  except ZkretError as e:
    _fail(e)
  return {"status": "ok", "revealed": info is not None, "info": info}
