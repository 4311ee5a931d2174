#!/usr/bin/env python3
"""
Counting distinct items across worker processes.

A single sketch must not be updated from several workers at once, so each
worker fills its own sketch over a shard of the stream and ships it back in
serialized form. The parent merges the shards into one sketch, which is
identical to the sketch a single pass over the whole stream would produce.
"""

from multiprocessing import Pool, cpu_count

from cardinal import HyperLogLog

RSD = 0.02
NUM_USERS = 200_000


def user_ids(shard: int, num_shards: int):
    """Every user appears twice in the stream, spread over all shards."""
    for i in range(shard, 2 * NUM_USERS, num_shards):
        yield f"user-{i % NUM_USERS}"


def sketch_shard(args) -> bytes:
    shard, num_shards = args
    sketch = HyperLogLog(RSD)
    sketch.add_batch(user_ids(shard, num_shards))
    return sketch.serialize()


def main():
    num_shards = min(cpu_count(), 4)
    with Pool(num_shards) as pool:
        shards = pool.map(sketch_shard, [(i, num_shards) for i in range(num_shards)])

    sketches = [HyperLogLog.deserialize(data) for data in shards]
    merged = sketches[0].merge(*sketches[1:])

    single = HyperLogLog(RSD)
    single.add_batch(user_ids(0, 1))

    print(f"Shards: {num_shards}, registers: {merged.num_registers}, "
          f"memory: {merged.memory_bytes()} bytes")
    for i, sketch in enumerate(sketches):
        print(f"  shard {i}: ~{sketch.estimate()} distinct users")
    print(f"Merged estimate: {merged.estimate()} (true: {NUM_USERS})")
    print(f"Identical to single-pass sketch: {merged == single}")


if __name__ == "__main__":
    main()
