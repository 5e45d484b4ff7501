
"""Generate an identity key file. The printed identity is the hex public key."""
import sys
from propreg.keys import IdentityKey

def main(path):
    key = IdentityKey.generate()
    key.save(path)
    print(key.identity)

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python tools/gen_identity.py <secrets/identity.json>")
        raise SystemExit(2)
    main(sys.argv[1])
