import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519, rsa


def rsa_generate(bits: int = 2048):
    '''Generate an RSA private key for tests'''
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


def private_pem(key) -> bytes:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


def canonical(prefix: str) -> str:
    '''Return a 64-character canonical name starting with prefix'''
    return prefix + "x" * (64 - len(prefix))


@pytest.fixture(scope="session")
def sender_key():
    return rsa_generate()


@pytest.fixture(scope="session")
def recipient_key():
    return rsa_generate()


@pytest.fixture(scope="session")
def other_key():
    return rsa_generate()


@pytest.fixture(scope="session")
def ed_key():
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def fixed_clock():
    return lambda: 1700000000.75
