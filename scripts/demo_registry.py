#!/usr/bin/env python
"""Demo script for named operator profiles."""

from __future__ import annotations

import tempfile
from pathlib import Path

from unistore import OperatorRegistry
from unistore.core.storage import ProfileNotFoundError, Unsupported


def demo_namespaced_profiles(registry: OperatorRegistry):
    """Demonstrate hierarchical roots with dot notation."""
    print("=" * 70)
    print("Demo 1: Hierarchical Roots")
    print("=" * 70)

    print("\n1️⃣  Writing through dotted profile names:")
    for name, key, data in [
        ("scratch.images", "photo.jpg", b"photo data"),
        ("scratch.images.thumbnails", "photo_thumb.jpg", b"thumbnail data"),
        ("scratch.documents", "report.pdf", b"report data"),
    ]:
        with registry.get_operator(name) as op:
            op.write(key, data)
            print(f"   ✓ Stored {key} in '{name}' (root {op.root})")

    print("\n2️⃣  Base 'scratch' profile sees everything:")
    with registry.get_operator("scratch") as op:
        for key in op.list():
            print(f"      - {key} ({op.stat(key).size} bytes)")


def demo_registry_features(registry: OperatorRegistry):
    """Demonstrate name parsing and capability reporting."""
    print("\n" + "=" * 70)
    print("Demo 2: Registry Features")
    print("=" * 70)

    print("\n1️⃣  Name parsing:")
    for name in ["scratch", "scratch.images", "scratch.images.thumbnails.small"]:
        base, sub_root = registry.parse_name(name)
        print(f"   '{name}' → base='{base}', sub-root='{sub_root}'")

    print("\n2️⃣  Capabilities per profile:")
    with registry.get_operator("scratch") as op:
        print(f"   ✓ scratch ({op.scheme}): {', '.join(op.capability_names())}")

    print("\n3️⃣  Configured profiles:")
    for name in registry.list_profiles():
        print(f"   ✓ {name}")


def demo_error_handling(registry: OperatorRegistry):
    """Demonstrate the errors callers branch on."""
    print("\n" + "=" * 70)
    print("Demo 3: Error Handling")
    print("=" * 70)

    print("\n1️⃣  Attempting to use a non-existent profile:")
    try:
        registry.get_operator("nonexistent.profile")
    except ProfileNotFoundError as e:
        print(f"   ✗ Error caught: {e}")

    print("\n2️⃣  Attempting an unsupported operation:")
    with registry.get_operator("scratch") as op:
        try:
            op.presign("report.pdf")
        except Unsupported as e:
            print(f"   ✗ Error caught: {e}")


def main():
    """Run all demos."""
    print("\n" + "=" * 70)
    print("Named Operator Profile Demo")
    print("=" * 70)

    with tempfile.TemporaryDirectory() as tmpdir:
        registry = OperatorRegistry(
            configuration={"scratch": {"scheme": "fs", "root": str(Path(tmpdir) / "scratch")}}
        )
        try:
            demo_namespaced_profiles(registry)
            demo_registry_features(registry)
            demo_error_handling(registry)
        except Exception as e:
            print(f"\n❌ Demo failed with error: {e}")
            import traceback

            traceback.print_exc()
            return 1

    print("\n" + "=" * 70)
    print("✅ All demos completed successfully!")
    print("=" * 70)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
