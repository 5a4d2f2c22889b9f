"""
轉帳服務：把資金從 Raffle 轉給收款方

只負責「入帳」這一步，Raffle.balance 的扣款由呼叫者（RaffleManager）負責。
收款方可以拒收（Account.accepts_payments = False），此時回傳 False，
由呼叫者決定要拋出哪一種異常並讓整個 transaction rollback。
"""
from sqlalchemy.orm import Session
import logging

from models import Account

logger = logging.getLogger(__name__)


def get_or_create_account(db: Session, address: str) -> Account:
    account = db.query(Account).filter(Account.address == address).first()
    if not account:
        account = Account(address=address, balance=0, accepts_payments=True)
        db.add(account)
        db.flush()
    return account


def send_funds(db: Session, to: str, amount: int) -> bool:
    """
    把 amount 記到收款方帳上

    參數：
        db: SQLAlchemy Session
        to: 收款方
        amount: 金額（最小單位）

    返回：
        True 轉帳成功，False 收款方拒收

    注意：
        - 不 commit，交給外層 transaction
        - amount = 0 也算成功（例如第二次提領利潤）
    """
    account = get_or_create_account(db, to)
    if not account.accepts_payments:
        logger.warning(f"Account {to} rejected transfer of {amount}")
        return False

    account.balance = account.balance + amount
    db.flush()
    return True


def get_balance(db: Session, address: str) -> int:
    account = db.query(Account).filter(Account.address == address).first()
    return account.balance if account else 0
