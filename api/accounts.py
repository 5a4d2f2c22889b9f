"""
Account API Endpoints

職責：查詢收款方餘額（得主獎金、operator 抽成）
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import Account
from schemas import AccountResponse

router = APIRouter(prefix="/api/accounts", tags=["accounts"])
logger = logging.getLogger(__name__)


@router.get("/{address}", response_model=AccountResponse)
def get_account(address: str, db: Session = Depends(get_db)):
    """
    取得帳戶餘額

    沒收過款的位址回傳 balance = 0，不回 404
    """
    try:
        account = db.query(Account).filter(Account.address == address).first()
        if not account:
            return AccountResponse(address=address, balance=0, accepts_payments=True)

        return AccountResponse(
            address=account.address,
            balance=account.balance,
            accepts_payments=account.accepts_payments
        )

    except Exception as e:
        logger.error(f"Failed to get account: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
