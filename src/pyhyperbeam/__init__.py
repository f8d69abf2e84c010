"""pyhyperbeam - Async Python client for HyperBEAM nodes and processes."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyhyperbeam")
except PackageNotFoundError:
    __version__ = "0+local"
from pyhyperbeam.address import Address, build_address, split_path
from pyhyperbeam.client import HyperBeamClient
from pyhyperbeam.codec import TypedValue, decode_param, decode_params, encode_param, encode_params
from pyhyperbeam.config import HyperBeamConfig, merge_headers
from pyhyperbeam.exceptions import (
    DuplicateKeyError,
    HyperBeamConfigError,
    HyperBeamEncodeError,
    HyperBeamError,
    HyperBeamTimeoutError,
    HyperBeamTransportError,
    InvalidSegmentError,
    MalformedResponseError,
    PredicateNotMetError,
    RequestFailedError,
    TypeMismatchError,
    UnencodableValueError,
)
from pyhyperbeam.models import ProcessSnapshot
from pyhyperbeam.poller import PollState, ProcessPoller, Subscription
from pyhyperbeam.process import ProcessHandle, ProcessRef

__all__ = [
    "__version__",
    "Address",
    "DuplicateKeyError",
    "HyperBeamClient",
    "HyperBeamConfig",
    "HyperBeamConfigError",
    "HyperBeamEncodeError",
    "HyperBeamError",
    "HyperBeamTimeoutError",
    "HyperBeamTransportError",
    "InvalidSegmentError",
    "MalformedResponseError",
    "PollState",
    "PredicateNotMetError",
    "ProcessHandle",
    "ProcessPoller",
    "ProcessRef",
    "ProcessSnapshot",
    "RequestFailedError",
    "Subscription",
    "TypeMismatchError",
    "TypedValue",
    "UnencodableValueError",
    "build_address",
    "decode_param",
    "decode_params",
    "encode_param",
    "encode_params",
    "merge_headers",
    "split_path",
]
