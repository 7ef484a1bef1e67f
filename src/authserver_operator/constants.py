"""Constants for the AuthServer Operator."""

# API Group
API_GROUP = "auth.cloud37.dev"
API_VERSION = "v1alpha1"
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

# Resource Kinds
KIND_AUTH_SERVER = "AuthServer"
PLURAL_AUTH_SERVER = "authservers"
KIND_INGRESS = "Ingress"
INGRESS_GROUP_VERSION = "networking.k8s.io/v1"

# Derived resource names
INGRESS_SUFFIX = "-ingress"
SERVICE_SUFFIX = "-service"

# Ports exposed by the AuthServer service
HTTP_PORT = 8080
HTTPS_PORT = 8443

# Labels
APP_NAME = "authserver"
OPERATOR_NAME = "authserver-operator"
LABEL_APP = "app"
LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_INSTANCE = "app.kubernetes.io/instance"

# Annotations owned by the operator on the managed Ingress
ANNOTATION_BACKEND_PROTOCOL = "nginx.ingress.kubernetes.io/backend-protocol"
ANNOTATION_ROUTE_TERMINATION = "route.openshift.io/termination"
ANNOTATION_CUSTOM_KEYS = f"{API_GROUP}/custom-annotation-keys"

MANAGED_ANNOTATION_KEYS = frozenset(
    {
        ANNOTATION_BACKEND_PROTOCOL,
        ANNOTATION_ROUTE_TERMINATION,
        ANNOTATION_CUSTOM_KEYS,
    }
)

BACKEND_PROTOCOL_HTTP = "HTTP"
BACKEND_PROTOCOL_HTTPS = "HTTPS"
TERMINATION_EDGE = "edge"
TERMINATION_PASSTHROUGH = "passthrough"
TERMINATION_REENCRYPT = "reencrypt"

INGRESS_PATH = "/"
INGRESS_PATH_TYPE = "ImplementationSpecific"

# Finalizers
FINALIZER = f"{API_GROUP}/finalizer"

# Field Manager
FIELD_MANAGER = OPERATOR_NAME

# Reconcile states
STATE_DISABLED = "Disabled"
STATE_CONVERGING = "Converging"
STATE_READY = "Ready"
STATE_DEGRADED = "Degraded"

# Condition Types
COND_READY = "Ready"
COND_INGRESS_READY = "IngressReady"
COND_DEGRADED = "Degraded"
COND_SPEC_INVALID = "SpecInvalid"

# Event Reasons
EVENT_REASON_RECONCILE_STARTED = "ReconcileStarted"
EVENT_REASON_RECONCILE_FAILED = "ReconcileFailed"
EVENT_REASON_VALIDATE_SUCCEEDED = "ValidateSucceeded"
EVENT_REASON_VALIDATE_FAILED = "ValidateFailed"
EVENT_REASON_INGRESS_CREATED = "IngressCreated"
EVENT_REASON_INGRESS_UPDATED = "IngressUpdated"
EVENT_REASON_INGRESS_DELETED = "IngressDeleted"
EVENT_REASON_INGRESS_CONFLICT = "IngressConflict"
