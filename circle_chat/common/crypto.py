import logging
from typing import Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils

from circle_chat.common.errors import DecryptionError, EncryptionError, SigningError

logger = logging.getLogger(__name__)

# Signatures use deterministic PKCS#1 v1.5 padding over a SHA-256 digest;
# field encryption uses randomized OAEP.
SIGNATURE_PADDING = padding.PKCS1v15()
OAEP = padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()),
                    algorithm=hashes.SHA256(),
                    label=None)


def digest(data: bytes) -> bytes:
    ''' This function returns the SHA-256 digest of data '''
    h = hashes.Hash(hashes.SHA256())
    h.update(data)
    return h.finalize()


def public_pem(key: Union[rsa.RSAPrivateKey, rsa.RSAPublicKey]) -> str:
    '''
    The function returns the PEM text of a public key.
        Input:
            - RSA public key, or a private key whose public half is wanted
        Output:
            - PEM string (SubjectPublicKeyInfo)
    '''
    if isinstance(key, rsa.RSAPrivateKey):
        key = key.public_key()
    pem = key.public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return pem.decode()


def load_public_pem(pem: Union[str, bytes]) -> rsa.RSAPublicKey:
    ''' Load an RSA public key from PEM text. Raises ValueError for other key types. '''
    if isinstance(pem, str):
        pem = pem.encode()
    key = serialization.load_pem_public_key(pem)
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError(f"expected an RSA public key, got {type(key).__name__}")
    return key


def load_private_pem(pem: Union[str, bytes], password: Union[bytes, None] = None) -> rsa.RSAPrivateKey:
    ''' Load an RSA private key from PEM text, optionally encrypted with password. '''
    if isinstance(pem, str):
        pem = pem.encode()
    key = serialization.load_pem_private_key(pem, password=password)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"expected an RSA private key, got {type(key).__name__}")
    return key


def sign(private_key: rsa.RSAPrivateKey, data: bytes) -> bytes:
    '''
    This function signs data: SHA-256 digest, then RSA PKCS#1 v1.5 over the digest.
    Input:
        - private_key: signer's RSA private key
        - data: bytes to sign (normally a canonical encoding)
    Output: signature bytes
    Raises SigningError if the key cannot produce a signature with this hash and padding.
    '''
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise SigningError(f"expected an RSA private key, got {type(private_key).__name__}")
    try:
        return private_key.sign(digest(data), SIGNATURE_PADDING, utils.Prehashed(hashes.SHA256()))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise SigningError(f"cannot sign with a {private_key.key_size}-bit key: {e}") from e


def verify(public_key: rsa.RSAPublicKey, data: bytes, signature: bytes) -> bool:
    '''
    This function checks a signature produced by sign().
    It never raises: a wrong key, malformed signature or unexpected type all give False.
    '''
    if not isinstance(public_key, rsa.RSAPublicKey):
        return False
    if not isinstance(signature, (bytes, bytearray)) or not isinstance(data, (bytes, bytearray)):
        return False
    try:
        public_key.verify(bytes(signature), digest(bytes(data)), SIGNATURE_PADDING,
                          utils.Prehashed(hashes.SHA256()))
    except (InvalidSignature, ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return True


def encrypt_field(public_key: rsa.RSAPublicKey, plaintext: bytes, field: str = "field") -> bytes:
    '''
    This function encrypts one message field with RSA-OAEP under the recipient's public key.
    Two encryptions of the same plaintext give different ciphertexts.
    Input:
        - public_key: recipient's RSA public key
        - plaintext: field bytes (must fit in one OAEP block)
        - field: name used in the error message
    Output: ciphertext bytes
    '''
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise EncryptionError(field, f"expected an RSA public key, got {type(public_key).__name__}")
    try:
        return public_key.encrypt(bytes(plaintext), OAEP)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise EncryptionError(field, f"{len(plaintext)} bytes under a {public_key.key_size}-bit key: {e}") from e


def decrypt_field(private_key: rsa.RSAPrivateKey, ciphertext: bytes, field: str = "field") -> bytes:
    ''' Decrypt one field produced by encrypt_field(). Raises DecryptionError on any failure. '''
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise DecryptionError(field, f"expected an RSA private key, got {type(private_key).__name__}")
    try:
        return private_key.decrypt(bytes(ciphertext), OAEP)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecryptionError(field, str(e) or "decryption failed") from e


def max_field_size(public_key: rsa.RSAPublicKey) -> int:
    '''This function returns the largest plaintext, in bytes, that encrypt_field accepts for this key'''
    # OAEP overhead is 2 * hash length + 2
    return public_key.key_size // 8 - 2 * hashes.SHA256.digest_size - 2
