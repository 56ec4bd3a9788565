"""M-Pesa Daraja client for STK push payments.

Flow:
1. OAuth token (client credentials, basic auth)
2. STK push: the payer gets a PIN prompt on their phone
3. Daraja calls back MPESA_CALLBACK_URL with the result (see routers.payments)

Requests are made once; failures raise MpesaError and are not retried.
"""

import base64
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests
from loguru import logger

from ..config import Config, get_config


SANDBOX_BASE_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_BASE_URL = "https://api.safaricom.co.ke"

# Daraja timestamps are East Africa Time (no DST)
EAT = timezone(timedelta(hours=3))

ACCOUNT_REFERENCE = "LAB REPORT"


class MpesaError(Exception):
    """Raised when a Daraja request fails."""
    pass


class InvalidPhoneNumberError(ValueError):
    """Raised for phone numbers that are not Kenyan mobile numbers."""
    pass


def normalize_phone_number(phone: str) -> str:
    """
    Convert a local Kenyan mobile number to MSISDN format.

    07XXXXXXXX -> 2547XXXXXXXX
    011XXXXXXX -> 25411XXXXXXX
    Numbers already in 2547/2541 form (optionally with +) pass through.

    Raises:
        InvalidPhoneNumberError: For any other shape
    """
    raw = "".join((phone or "").split()).lstrip("+")

    if len(raw) == 12 and raw.isdigit() and raw.startswith(("2547", "2541")):
        return raw

    if len(raw) == 10 and raw.isdigit():
        if raw.startswith("07"):
            return f"254{raw[1:]}"
        if raw.startswith("011"):
            return f"254{raw[1:]}"

    raise InvalidPhoneNumberError("Invalid Kenyan phone number format")


def get_base_url(config: Optional[Config] = None) -> str:
    config = config or get_config()
    environment = (config.mpesa_environment or "sandbox").lower()
    if environment not in ("sandbox", "production"):
        logger.warning(f"Unknown MPESA_ENVIRONMENT '{environment}', defaulting to sandbox")
    return PRODUCTION_BASE_URL if environment == "production" else SANDBOX_BASE_URL


def is_callback_url_valid(config: Optional[Config] = None) -> bool:
    config = config or get_config()
    return bool(config.mpesa_callback_url) and config.mpesa_callback_url.startswith("https://")


def build_timestamp(now: Optional[datetime] = None) -> str:
    """Daraja timestamp: YYYYMMDDHHMMSS in East Africa Time."""
    now = now or datetime.now(EAT)
    return now.astimezone(EAT).strftime("%Y%m%d%H%M%S")


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """STK password: base64(shortcode + passkey + timestamp)."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


def get_access_token(config: Optional[Config] = None) -> str:
    """
    Fetch an OAuth access token.

    Raises:
        MpesaError: On HTTP or network failure
    """
    config = config or get_config()
    url = f"{get_base_url(config)}/oauth/v1/generate"

    try:
        response = requests.get(
            url,
            params={"grant_type": "client_credentials"},
            auth=(config.mpesa_consumer_key, config.mpesa_consumer_secret),
            timeout=config.sd_http_timeout_seconds,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"M-Pesa token request failed: {e}")
        raise MpesaError("Failed to reach M-Pesa") from e

    if response.status_code != 200:
        logger.error(f"M-Pesa token request returned HTTP {response.status_code}")
        raise MpesaError(f"M-Pesa token request failed: HTTP {response.status_code}")

    token = response.json().get("access_token")
    if not token:
        raise MpesaError("M-Pesa token response did not include an access token")

    return token


def initiate_stk_push(msisdn: str, amount: int, config: Optional[Config] = None) -> Dict[str, Any]:
    """
    Send an STK push prompt to the payer's phone.

    Args:
        msisdn: Phone number in 254XXXXXXXXX format
        amount: Amount in KSh
        config: Configuration (defaults to environment)

    Returns:
        Daraja response (includes CheckoutRequestID)

    Raises:
        MpesaError: On HTTP failure or a rejected request
    """
    config = config or get_config()
    access_token = get_access_token(config)
    timestamp = build_timestamp()

    body = {
        "BusinessShortCode": config.mpesa_shortcode,
        "Password": build_password(config.mpesa_shortcode, config.mpesa_passkey, timestamp),
        "Timestamp": timestamp,
        "TransactionType": config.mpesa_transaction_type,
        "Amount": amount,
        "PartyA": msisdn,
        "PartyB": config.mpesa_shortcode,
        "PhoneNumber": msisdn,
        "CallBackURL": config.mpesa_callback_url,
        "AccountReference": ACCOUNT_REFERENCE,
        "TransactionDesc": f"Payment KSH {amount} for draft access",
    }

    try:
        response = requests.post(
            f"{get_base_url(config)}/mpesa/stkpush/v1/processrequest",
            headers={"Authorization": f"Bearer {access_token}"},
            json=body,
            timeout=config.sd_http_timeout_seconds,
        )
    except requests.exceptions.RequestException as e:
        logger.error(f"M-Pesa STK push failed: {e}")
        raise MpesaError("Failed to reach M-Pesa") from e

    data = response.json() if response.content else {}

    if response.status_code != 200 or str(data.get("ResponseCode", "")) != "0":
        message = data.get("errorMessage") or data.get("ResponseDescription") or f"HTTP {response.status_code}"
        logger.error(f"M-Pesa STK push rejected: {message}")
        raise MpesaError(f"STK push failed: {message}")

    logger.info(f"STK push accepted: {data.get('CheckoutRequestID')}")
    return data


def parse_stk_callback(body: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract the result of an STK callback payload.

    A payment is successful only when ResultCode is 0 and a receipt number
    is present.

    Returns:
        {"checkout_request_id", "status", "mpesa_code", "phone_number", "result_code", "result_desc"}
    """
    stk = ((body or {}).get("Body") or {}).get("stkCallback") or {}
    items = (stk.get("CallbackMetadata") or {}).get("Item") or []
    metadata = {item.get("Name"): item.get("Value") for item in items if isinstance(item, dict)}

    result_code = stk.get("ResultCode")
    mpesa_code = metadata.get("MpesaReceiptNumber")
    phone = metadata.get("PhoneNumber")

    succeeded = str(result_code) == "0" and bool(mpesa_code)

    return {
        "checkout_request_id": stk.get("CheckoutRequestID"),
        "status": "success" if succeeded else "failed",
        "mpesa_code": mpesa_code,
        "phone_number": str(phone) if phone is not None else None,
        "result_code": result_code,
        "result_desc": stk.get("ResultDesc"),
    }
