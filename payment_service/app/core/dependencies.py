from fastapi import Request

from ..crud.proprietors.proprietor_balance_crud import ProprietorDirectory
from ...util.paystack_client import PaymentGateway


def get_payment_gateway(request: Request) -> PaymentGateway:
    # built once in main.py from PAYMENT_MODE
    return request.app.state.payment_gateway


def get_proprietor_directory() -> ProprietorDirectory:
    return ProprietorDirectory()
