from relay.managers.pairing.pairing import PairingManager

__all__ = ["PairingManager"]
