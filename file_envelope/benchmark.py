"""
File Envelope Benchmark CLI.

Usage:
    file-envelope-benchmark

Or run directly:
    python -m file_envelope.benchmark

PostgreSQL setup (optional, enables the storage demo):
    1. Run schema: psql -U postgres -f schema.sql
    2. Set DATABASE_URL environment variable or .env file
"""

from __future__ import annotations

import asyncio
import logging
import time
from uuid import uuid4

from file_envelope.auth import PostgresProfileStore, ensure_profile
from file_envelope.client import DatabaseClient
from file_envelope.config import Settings
from file_envelope.crypto import generate_random_bytes
from file_envelope.envelope import decode, encode
from file_envelope.errors import ConnectionFailedError, PayloadTooLargeError
from file_envelope.storage import NewFile, PostgresFileStorage

PAYLOAD_SIZES = (0, 5, 1024, 64 * 1024, 1024 * 1024)


def _box(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}".ljust(69) + "|")
    print("+" + "-" * 68 + "+")


async def run_benchmark() -> None:
    """Run the file envelope benchmark."""
    print("=== File Envelope Benchmark ===\n")

    settings = Settings.from_env()

    try:
        user_input = input("Enter iterations per payload size (default: 20): ").strip()
        iterations = int(user_input) if user_input else 20
    except ValueError:
        iterations = 20
    print(f"Testing with {iterations} iterations per size\n")

    print("=" * 70)
    print("                    BENCHMARK START")
    print("=" * 70 + "\n")

    # ========================================================================
    # Demo 1: Encode/decode round trips
    # ========================================================================
    _box("Demo 1: Encode/Decode Round Trips")

    rates = {}
    for size in PAYLOAD_SIZES:
        payload = generate_random_bytes(size)

        encode_start = time.perf_counter()
        envelopes = [encode(payload, settings.max_file_size) for _ in range(iterations)]
        encode_time = time.perf_counter() - encode_start

        decode_start = time.perf_counter()
        for envelope in envelopes:
            if decode(envelope) != payload:
                print(f"[ERROR] Round trip mismatch at {size} bytes")
                return
        decode_time = time.perf_counter() - decode_start

        rates[size] = (iterations / encode_time, iterations / decode_time)
        print(
            f"  {size:>8} bytes | envelope {len(envelopes[0]):>8} chars | "
            f"encode {encode_time * 1000 / iterations:.3f}ms | "
            f"decode {decode_time * 1000 / iterations:.3f}ms"
        )
    print(f"[OK] All sizes round-tripped ({len(PAYLOAD_SIZES) * iterations} envelopes)\n")

    # ========================================================================
    # Demo 2: Uniqueness
    # ========================================================================
    _box("Demo 2: Fresh Key/IV Per Envelope")

    first, second = encode(b"same input"), encode(b"same input")
    print(f"[OK] Identical input, distinct envelopes: {first != second}\n")

    # ========================================================================
    # Demo 3: Size bound
    # ========================================================================
    _box(f"Demo 3: Size Bound ({settings.max_file_size} bytes)")

    bound_start = time.perf_counter()
    encode(bytes(settings.max_file_size), settings.max_file_size)
    bound_duration = time.perf_counter() - bound_start
    print(f"[OK] Payload at the bound encoded in {bound_duration * 1000:.3f}ms")

    try:
        encode(bytes(settings.max_file_size + 1), settings.max_file_size)
        print("[ERROR] Oversized payload was accepted")
    except PayloadTooLargeError as e:
        print(f"[OK] Oversized payload rejected: {e}\n")

    # ========================================================================
    # Demo 4: Storage round trip (PostgreSQL)
    # ========================================================================
    _box("Demo 4: PostgreSQL Put/Get")

    if not settings.database_url:
        print("[SKIP] DATABASE_URL not set\n")
    else:
        client = DatabaseClient(
            settings.database_url,
            retry=settings.retry_policy(),
            application_name=settings.app_name,
        )
        try:
            async with client:
                await _storage_demo(client, iterations)
        except ConnectionFailedError as e:
            print(f"[ERROR] {e}\n")

    # ========================================================================
    # Summary
    # ========================================================================
    print("=" * 70)
    print("                    BENCHMARK SUMMARY")
    print("=" * 70 + "\n")

    for size, (enc_rate, dec_rate) in rates.items():
        print(f"  {size:>8} bytes: encode {enc_rate:.2f} ops/sec | decode {dec_rate:.2f} ops/sec")

    print("\nTest Configuration:")
    print("  - Crypto: AES-256-CBC with PKCS#7, fresh key/IV per envelope")
    print("  - Envelope: base64url(JSON{k, i, d, s}) without padding")
    print(f"  - Size bound: {settings.max_file_size} bytes")

    print("\n" + "=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")


async def _storage_demo(client: DatabaseClient, iterations: int) -> None:
    profiles = PostgresProfileStore(client)
    storage = PostgresFileStorage(client)

    user_id = uuid4()
    await ensure_profile(profiles, user_id, f"benchmark-{user_id}@example.invalid")

    payload = generate_random_bytes(64 * 1024)
    ids = []

    put_start = time.perf_counter()
    for i in range(iterations):
        file_id = await storage.put(
            NewFile(
                name=f"bench-{i}.bin",
                content=encode(payload),
                size=len(payload),
                mime_type="application/octet-stream",
                user_id=user_id,
            )
        )
        ids.append(file_id)
    put_duration = time.perf_counter() - put_start

    get_start = time.perf_counter()
    for file_id in ids:
        record = await storage.get(file_id)
        if decode(record.content) != payload:
            print(f"[ERROR] Stored file {file_id} did not round-trip")
            return
    get_duration = time.perf_counter() - get_start

    for file_id in ids:
        await storage.delete(file_id)

    print(f"[OK] Stored and fetched {iterations} files")
    print(f"[PERF] Encode+Put: {put_duration * 1000 / iterations:.3f}ms per file")
    print(f"[PERF] Get+Decode: {get_duration * 1000 / iterations:.3f}ms per file\n")


def main() -> None:
    """CLI entry point for file-envelope-benchmark command."""
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(run_benchmark())


if __name__ == "__main__":
    main()
