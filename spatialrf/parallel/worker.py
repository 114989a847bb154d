#!/usr/bin/env python3
"""
Cluster Worker
==============
Worker processes that connect to a ClusterPool coordinator and run the
model evaluations it sends.

Usage:
    # On every node except the coordinator
    spatialrf-worker --coordinator 10.0.0.1 --port 11000 --cores 8

    # Equivalent module invocation
    python -m spatialrf.parallel.worker --coordinator 10.0.0.1 --cores 8
"""

import argparse
import multiprocessing
import pickle
import sys
import traceback

import zmq


# Message kinds exchanged with the coordinator
READY = b"ready"
JOB = b"job"
RESULT = b"result"
STOP = b"stop"


def run_worker(address: str):
    """
    Serve jobs from the coordinator at ``address`` until told to stop.

    Each job carries ``(map_id, index, item, task)``; the task callable is
    only sent with the first job of a map and reused for the rest.
    """
    context = zmq.Context()
    socket = context.socket(zmq.DEALER)
    socket.setsockopt(zmq.LINGER, 0)
    socket.connect(address)
    socket.send_multipart([READY])

    task = None
    task_map_id = None
    try:
        while True:
            kind, *frames = socket.recv_multipart()
            if kind == STOP:
                break
            if kind != JOB:
                continue

            map_id, index, item, new_task = pickle.loads(frames[0])
            if new_task is not None:
                task, task_map_id = new_task, map_id

            try:
                if task is None or task_map_id != map_id:
                    raise RuntimeError(f"No task received for map {map_id}")
                reply = (map_id, index, True, task(item))
            except Exception:
                reply = (map_id, index, False, traceback.format_exc())

            socket.send_multipart([RESULT, pickle.dumps(reply)])
    finally:
        socket.close()
        context.term()


def start_workers(coordinator: str, port: int, cores: int):
    """Run ``cores`` worker processes against one coordinator and wait."""
    address = f"tcp://{coordinator}:{port}"
    processes = [
        multiprocessing.Process(target=run_worker, args=(address,))
        for _ in range(cores)
    ]
    for p in processes:
        p.start()
    for p in processes:
        p.join()
    return max((p.exitcode or 0 for p in processes), default=0)


def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(
        description="spatialrf cluster worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Eight workers for the coordinator at 10.0.0.1
  spatialrf-worker --coordinator 10.0.0.1 --cores 8

  # Custom port
  spatialrf-worker --coordinator 10.0.0.1 --port 12000 --cores 4
"""
    )

    parser.add_argument(
        '--coordinator',
        required=True,
        help='IP address of the coordinator node'
    )

    parser.add_argument(
        '--port', '-p',
        type=int,
        default=11000,
        help='Port the coordinator listens on (default: 11000)'
    )

    parser.add_argument(
        '--cores', '-n',
        type=int,
        default=1,
        help='Number of worker processes on this node (default: 1)'
    )

    args = parser.parse_args()

    if args.cores < 1:
        parser.error("--cores must be >= 1")

    print(f"Starting {args.cores} worker(s) for tcp://{args.coordinator}:{args.port}")
    sys.exit(start_workers(args.coordinator, args.port, args.cores))


if __name__ == "__main__":
    main()
