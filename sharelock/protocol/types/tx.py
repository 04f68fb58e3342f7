from pydantic import BaseModel, Field
from typing import Dict, Any
import json
from ..crypto.hash import sha256_hex
from .common import OpType
from ..crypto.keys import sign as crypto_sign


class Operation(BaseModel):
    op_type: OpType
    sender: str
    nonce: int
    payload: Dict[str, Any] = Field(default_factory=dict)
    signature: str = ""  # hex ECDSA (r||s), default empty
    pub_key: str = ""    # hex compressed public key of sender

    def hash(self) -> str:
        # Payload is serialized canonically so every field is covered by the signature
        payload_str = json.dumps(self.payload, sort_keys=True, separators=(",", ":"))
        data = (
            self.op_type.value
            + self.sender
            + str(self.nonce)
            + payload_str
            + self.pub_key
        )
        return sha256_hex(data.encode("utf-8"))

    def sign(self, priv_key_bytes: bytes):
        """Signs the operation hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
