"""
visualizer.py — Live Particle + Cell Viewer
============================================
Draws the cell layout (terrain, stone, water, drains) as an image and the
particles as a scatter plot colored by speed.

Controls:
  Space : play / pause
  Right : run one frame, then pause
  R     : reset to the spawn state
  Left mouse button held : pull water toward the cursor
  Right mouse button held: push water away

Uses matplotlib FuncAnimation for real-time updates.
"""

import numpy as np
import matplotlib.pyplot as plt
import matplotlib.animation as animation
from matplotlib.colors import ListedColormap

from flipfluid import FluidSimulation
from flipfluid.forces import apply_impulse, DEFAULT_INTERACTION_STRENGTH

# Colors indexed by cell type: air, terrain, stone, water, drain
CELL_COLORS = ["#0a0a0a", "#6b4f2a", "#555555", "#0d2b4d", "#2e8b57"]
cell_cmap = ListedColormap(CELL_COLORS)


class FluidVisualizer:
    """
    Real-time viewer of the water simulation.

    Usage (standalone):
        from flipfluid import FluidSimulation
        from visualizer import FluidVisualizer

        sim = FluidSimulation()
        viz = FluidVisualizer(sim)
        viz.run()  # Opens live window, starts paused
    """

    def __init__(self, simulation: FluidSimulation, max_speed: float = 10.0):
        """
        Args:
            simulation : FluidSimulation instance
            max_speed  : Speed mapped to the top of the particle colormap
        """
        self.sim = simulation
        self.max_speed = max_speed
        self.cursor = None
        self.interaction = 0.0

        self._setup_figure()

    def _setup_figure(self):
        """Initialize the matplotlib figure."""
        grid = self.sim.grid
        width, height = grid.bounds_size

        self.fig, self.ax = plt.subplots(figsize=(10, 10 * height / width))
        self.fig.patch.set_facecolor('#0a0a0a')
        self.ax.set_facecolor('#0a0a0a')
        self.ax.set_xticks([])
        self.ax.set_yticks([])
        for spine in self.ax.spines.values():
            spine.set_edgecolor('#333333')

        self.cells_img = self.ax.imshow(
            self._cell_image(), cmap=cell_cmap,
            vmin=0, vmax=len(CELL_COLORS) - 1,
            interpolation='nearest',
            origin='lower',
            extent=(0, width, 0, height),
        )

        pos = self._visible_positions()
        self.scatter = self.ax.scatter(
            pos[:, 0], pos[:, 1], s=4, c=np.zeros(len(pos)),
            cmap='cool', vmin=0, vmax=self.max_speed,
        )
        self.ax.set_xlim(0, width)
        self.ax.set_ylim(0, height)

        self.title_text = self.ax.set_title(
            "Substep 0 | paused | score 0",
            color='#cccccc', fontsize=10, fontfamily='monospace'
        )

        self.fig.canvas.mpl_connect('key_press_event', self.on_key)
        self.fig.canvas.mpl_connect('button_press_event', self.on_press)
        self.fig.canvas.mpl_connect('button_release_event', self.on_release)
        self.fig.canvas.mpl_connect('motion_notify_event', self.on_motion)
        plt.tight_layout()

    def _cell_image(self) -> np.ndarray:
        grid = self.sim.grid
        return grid.cell_type.reshape(grid.rows, grid.cols)

    def _visible_positions(self) -> np.ndarray:
        p = self.sim.particles
        return p.positions[p.active_mask()]

    # ── Input ─────────────────────────────────────────────────────────────────

    def on_key(self, event):
        """Map keys onto the simulation's pause/step/reset commands."""
        if event.key == ' ':
            self.sim.toggle_pause()
        elif event.key == 'right':
            self.sim.step_once()
        elif event.key == 'r':
            self.sim.reset()

    def on_press(self, event):
        if event.inaxes is not self.ax:
            return
        self.cursor = (event.xdata, event.ydata)
        self.interaction = 1.0 if event.button == 1 else -1.0

    def on_release(self, event):
        self.cursor = None
        self.interaction = 0.0

    def on_motion(self, event):
        if self.cursor is not None and event.inaxes is self.ax:
            self.cursor = (event.xdata, event.ydata)

    # ── Drawing ───────────────────────────────────────────────────────────────

    def update(self, frame_num):
        """Called by FuncAnimation each frame. Steps sim and updates plots."""
        if self.cursor is not None:
            apply_impulse(self.sim.particles, self.cursor,
                          self.sim.config.interaction_radius,
                          strength=self.interaction * DEFAULT_INTERACTION_STRENGTH,
                          dt=self.sim.config.frame_time)

        substeps = self.sim.run_frame()

        p = self.sim.particles
        active = p.active_mask()
        self.scatter.set_offsets(p.positions[active])
        self.scatter.set_array(p.speeds()[active])
        self.cells_img.set_data(self._cell_image())

        status = "won" if self.sim.has_won else self.sim.state.value
        div = f" | div_max={substeps[-1]['divergence_max']:.4f}" if substeps else ""
        self.title_text.set_text(
            f"Substep {self.sim.substep_count} | {status} | score {self.sim.score}{div}"
        )
        return [self.cells_img, self.scatter, self.title_text]

    def run(self, fps: int = 30, frames: int = None):
        """
        Start the live animation window.

        Args:
            fps    : Target animation frame rate
            frames : Total frames to render (None = infinite)
        """
        interval_ms = 1000 // fps
        self.anim = animation.FuncAnimation(
            self.fig,
            self.update,
            frames=frames,
            interval=interval_ms,
            blit=False,
            cache_frame_data=False,
        )
        plt.show()

    def save_gif(self, path: str = "water_sim.gif", fps: int = 30, frames: int = 100):
        """Save animation as a GIF (for reports and demos)."""
        print(f"Rendering {frames} frames to {path}...")
        self.sim.resume()
        self.anim = animation.FuncAnimation(
            self.fig, self.update, frames=frames, interval=1000 // fps, blit=False
        )
        writer = animation.PillowWriter(fps=fps)
        self.anim.save(path, writer=writer)
        print(f"Saved: {path}")
