"""Protocol constants shared across passkeyflow modules."""

RESPONSE_MODE_WEB_MESSAGE = "com_visa_web_message"
RESPONSE_TYPE_SERVER_STATE = "urn:ext:oauth:response-type:server_state"
SERVER_STATE_TOKEN_HINT = "urn:ext:oauth:token-type-hint:server_state"
CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"
CLIENT_ASSERTION_TYP = "vnd.visa.client_credential+JWT"
REQUEST_OBJECT_TYP = "oauth-authz-req+jwt"

CREDENTIAL_BINDING_TYPE = "com_visa_payment_credential_binding"
PAYMENT_TRANSACTION_TYPE = "com_visa_payment_transaction"
PAN_SCHEME = "com_visa_pan"
SOURCE_HINT_SERVER_STATE = "SERVER_STATE"
FIDO2_AMR = "pop#fido2"

DEVICE_PROFILING_SOURCE = "VDI"
DEVICE_PROFILING_PLACEHOLDER_REF = "DFP_SESSION_ID"
NO_PASSKEY_ERROR = "notfound_amr_values"

HUB_PATH = "/oauth2/authorization/request/hub"
BINDING_ENDPOINT = "/oauth2/authorization/request/hub/payment-credential-binding"
PAR_RESOURCE_PATH = "/vpp/v1/passkeys/oauth2/authorization/request/pushed"

ROUTING_HINT_HEADER = "X-VIA-HINT"
SERVICE_CONTEXT_HEADER = "X-SERVICE-CONTEXT"

ENVELOPE_KEY_ALGORITHM = "RSA-OAEP-256"
ENVELOPE_CONTENT_ALGORITHM = "A128GCM"
MAX_ASSERTION_TTL_SECONDS = 120
FALLBACK_REQUEST_TTL_SECONDS = 480
