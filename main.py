"""
main.py — Master Entry Point
=============================
Top-level script that runs the water simulation in one of several modes.

Usage:
    python main.py                              # Headless run (default)
    python main.py --mode live                  # Matplotlib viewer
    python main.py --mode benchmark             # Per-stage timing table
    python main.py --mode record --frames 200   # Save .npy snapshots
    python main.py --config level.json -v       # Settings from JSON, debug logs
"""

import argparse
import logging

import numpy as np

from flipfluid import FluidSimulation, SimulationConfig


def load_config(path: str = None) -> SimulationConfig:
    if path is None:
        return SimulationConfig()
    return SimulationConfig.from_json(path)


def run_live(config: SimulationConfig):
    """Live interactive visualization."""
    from visualizer import FluidVisualizer

    print(f"Starting live simulation ({config.cols}x{config.rows}, {config.num_particles} particles)...")
    print("Space = play/pause, Right = step, R = reset, click = pull water. Close the window to exit.\n")

    sim = FluidSimulation(config)
    viz = FluidVisualizer(sim)
    viz.run(fps=30)


def run_headless(config: SimulationConfig, frames: int = 100):
    """Run simulation without display; prints stats every 10 frames."""
    print(f"\nHeadless simulation | {config.cols}x{config.rows} | "
          f"{config.num_particles} particles | {frames} frames")
    print(f"{'─'*60}")

    sim = FluidSimulation(config)
    sim.resume()
    frame_times = []

    for f in range(frames):
        substeps = sim.run_frame()
        frame_times.append(sum(m["total_ms"] for m in substeps))
        last = substeps[-1]

        if f % 10 == 0:
            print(f"  Frame {f:03d} | {frame_times[-1]:7.1f}ms | "
                  f"water={last['water_cells']:4d} | "
                  f"div_max={last['divergence_max']:.5f} | "
                  f"score={last['score']}")

    print(f"{'─'*60}")
    print(f"  Average: {np.mean(frame_times):.1f}ms/frame ({1000/np.mean(frame_times):.1f} FPS)")
    print(f"  Min:     {np.min(frame_times):.1f}ms")
    print(f"  Max:     {np.max(frame_times):.1f}ms")
    sim.print_status()


def run_benchmark(config: SimulationConfig, frames: int = 50):
    """
    Detailed performance breakdown.
    Shows how long each stage of a substep takes.
    """
    print(f"\n{'='*60}")
    print(f"  SUBSTEP BENCHMARK | {config.cols}x{config.rows} | {frames} frames")
    print(f"{'='*60}")

    sim = FluidSimulation(config)
    sim.resume()

    # Warm up (lets the rest density settle)
    for _ in range(5):
        sim.run_frame()

    logs = []
    for _ in range(frames):
        logs.extend(sim.run_frame())

    keys = ["integrate_ms", "push_apart_ms", "collide_ms", "p2g_ms",
            "density_ms", "solve_ms", "g2p_ms", "total_ms"]

    print(f"\n{'Stage':<20} {'Mean':>8} {'Min':>8} {'Max':>8}")
    print(f"{'─'*50}")
    for k in keys:
        vals = [m[k] for m in logs]
        print(f"  {k:<18} {np.mean(vals):>7.2f}ms {np.min(vals):>7.2f}ms {np.max(vals):>7.2f}ms")

    total_vals = [m["total_ms"] for m in logs]
    per_frame = np.mean(total_vals) * config.iterations_per_frame
    print(f"\n{'─'*50}")
    print(f"  Substeps/frame: {config.iterations_per_frame}")
    print(f"  FPS (physics only): {1000/per_frame:.1f}")


def run_record(config: SimulationConfig, frames: int = 200, output_dir: str = "data"):
    """Record snapshots of one run to disk."""
    from data_pipeline import FrameRecorder

    print(f"\nRecording {frames} frames → {output_dir}/\n")
    recorder = FrameRecorder(output_dir=output_dir)
    recorder.record_run(config, run_id=1, n_frames=frames, save_every=2)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="2D PIC water simulation")
    parser.add_argument(
        "--mode", choices=["live", "headless", "benchmark", "record"],
        default="headless",
        help="Run mode (default: headless)"
    )
    parser.add_argument("--config", type=str, default=None, help="JSON settings file")
    parser.add_argument("--frames", type=int, default=100, help="Number of frames")
    parser.add_argument("--output", type=str, default="data", help="Output directory for record mode")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    config = load_config(args.config)

    if args.mode == "live":
        run_live(config)
    elif args.mode == "headless":
        run_headless(config, frames=args.frames)
    elif args.mode == "benchmark":
        run_benchmark(config, frames=args.frames)
    elif args.mode == "record":
        run_record(config, frames=args.frames, output_dir=args.output)
