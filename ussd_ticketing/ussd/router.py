import logging

from fastapi import APIRouter, Depends, Form
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ussd_ticketing.database import get_db
from ussd_ticketing.sessions.schemas import CustomerSession, OperatorSession
from ussd_ticketing.sessions.store import SessionStore, get_customer_sessions, get_operator_sessions
from ussd_ticketing.ussd.auth import PinAttemptLimiter, get_pin_limiter
from ussd_ticketing.ussd.customer import CustomerMenu
from ussd_ticketing.ussd.operator import OperatorMenuHandler
from ussd_ticketing.ussd.replies import UssdReply, end

logger = logging.getLogger(__name__)

router = APIRouter()


def _reply(reply: UssdReply) -> PlainTextResponse:
    return PlainTextResponse(str(reply))


@router.post("/ussd", response_class=PlainTextResponse)
def customer_ussd(
    sessionId: str = Form(..., description="Gateway session identifier"),
    serviceCode: str = Form("", description="Dialled USSD service code"),
    phoneNumber: str = Form("", description="Caller phone number"),
    text: str = Form("", description="Accumulated input, '*' separated"),
    db: Session = Depends(get_db),
    sessions: SessionStore[CustomerSession] = Depends(get_customer_sessions),
):
    """Customer menu: browse buses, book, check and cancel"""
    try:
        with sessions.locked(sessionId) as session:
            reply = CustomerMenu(db).handle(session, phoneNumber, text)
    except Exception:
        logger.exception(f"Customer USSD request failed (session {sessionId}, service {serviceCode})")
        db.rollback()
        reply = end("Error. Try again later.")

    return _reply(reply)


@router.post("/ussd-ops", response_class=PlainTextResponse)
def operator_ussd(
    sessionId: str = Form(..., description="Gateway session identifier"),
    text: str = Form("", description="Accumulated input, '*' separated"),
    db: Session = Depends(get_db),
    sessions: SessionStore[OperatorSession] = Depends(get_operator_sessions),
    limiter: PinAttemptLimiter = Depends(get_pin_limiter),
):
    """Operator menu: PIN login, verification, boarding and walk-in sales"""
    try:
        with sessions.locked(sessionId) as session:
            reply = OperatorMenuHandler(db, limiter=limiter).handle(session, text)
    except Exception:
        logger.exception(f"Operator USSD request failed (session {sessionId})")
        db.rollback()
        reply = end("Error. Try again.")

    return _reply(reply)
