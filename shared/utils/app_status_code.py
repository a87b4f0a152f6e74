class AppStatusCode:
    # Success
    OPERATION_SUCCESSFUL = "100"
    DATA_RETRIEVED_SUCCESSFULLY = "101"
    CREATED_SUCCESSFULLY = "102"
    UPDATED_SUCCESSFULLY = "103"
    DELETED_SUCCESSFULLY = "104"

    # Generic failures
    OPERATION_FAILED = "200"
    OPERATION_ERROR = "201"
    INVALID_INPUT = "202"
    REQUIRED_VALIDATION_ERROR = "203"
    DUPLICATE_ADD_ERROR = "204"
    NOT_FOUND = "205"

    # Fees
    FEE_NOT_FOUND = "300"
    FEE_AMOUNT_OUT_OF_RANGE = "301"

    # Payments
    PAYMENT_NOT_FOUND = "400"
    PAYER_NOT_FOUND = "401"
    PAYMENT_INVALID_STATE = "402"
    PAYMENT_NOT_ALLOWED = "403"
    PAYMENT_REFERENCE_CONFLICT = "404"
    PAYMENT_ALREADY_CLEARED = "405"

    # Gateway
    GATEWAY_UNAVAILABLE = "500"
    GATEWAY_REJECTED = "501"
    WEBHOOK_SIGNATURE_INVALID = "502"
    WEBHOOK_PAYLOAD_INVALID = "503"
