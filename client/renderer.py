"""
Minimal arena renderer using pygame.
Draws players, orbs and their chains from the interpolated world state,
follows the local player with the camera, and samples the mouse as a
stand-in for the hand tracker.
"""

try:
    import pygame
    PYGAME_AVAILABLE = True
except ImportError:
    PYGAME_AVAILABLE = False

from common.config import WINDOW_WIDTH, WINDOW_HEIGHT, RENDER_FPS
from common.snapshot import OrbMode, WorldState
from client.input_sampler import Gesture, PointerSample


ORB_BASE_RADIUS = 12
ORB_GROWTH_PER_POINT = 0.05


def player_color(pid: str) -> tuple:
    """Stable per-player color derived from the id."""
    seed = 0
    for ch in pid:
        seed = (seed * 31 + ord(ch)) & 0xFFFFFFFF
    hue = (seed * 137.508) % 360
    if not PYGAME_AVAILABLE:
        return (200, 200, 200)
    color = pygame.Color(0)
    color.hsla = (hue, 70, 60, 100)
    return (color.r, color.g, color.b)


def orb_radius(owner_score: float) -> float:
    return ORB_BASE_RADIUS + owner_score * ORB_GROWTH_PER_POINT


class GameRenderer:
    """Pygame-based renderer for the arena client."""

    def __init__(self, width: int = WINDOW_WIDTH, height: int = WINDOW_HEIGHT):
        self.recenter_requested = False
        self.rejoin_requested = False
        if not PYGAME_AVAILABLE:
            print("[RENDERER] pygame not available, running headless")
            self.headless = True
            return

        self.headless = False
        pygame.init()
        self.width = width
        self.height = height
        self.screen = pygame.display.set_mode((width, height))
        pygame.display.set_caption("Flail Arena")
        self.font = pygame.font.SysFont('monospace', 14)
        self.clock = pygame.time.Clock()

    @classmethod
    def headless_renderer(cls) -> 'GameRenderer':
        renderer = cls.__new__(cls)
        renderer.headless = True
        renderer.recenter_requested = False
        renderer.rejoin_requested = False
        return renderer

    def render(self, world: WorldState, local_id, sample: PointerSample,
               anchor: tuple, max_radius: float, metrics: dict):
        """Render one frame."""
        if self.headless:
            return

        self.screen.fill((30, 30, 30))

        # Camera follows the local player when we have one
        me = world.player(local_id) if local_id is not None else None
        cam_x = me.x - self.width / 2 if me else 0.0
        cam_y = me.y - self.height / 2 if me else 0.0

        # Grid scrolls with the camera
        off_x = int(-cam_x) % 50
        off_y = int(-cam_y) % 50
        for x in range(off_x, self.width, 50):
            pygame.draw.line(self.screen, (45, 45, 45), (x, 0), (x, self.height))
        for y in range(off_y, self.height, 50):
            pygame.draw.line(self.screen, (45, 45, 45), (0, y), (self.width, y))

        players = {p.id: p for p in world.players}

        # Orbs first so players draw over chains
        for orb in world.orbs:
            owner = players.get(orb.owner_id)
            pos = (int(orb.x - cam_x), int(orb.y - cam_y))
            radius = int(orb_radius(owner.score if owner else 0.0))
            if owner and orb.mode == OrbMode.ORBIT:
                owner_pos = (int(owner.x - cam_x), int(owner.y - cam_y))
                pygame.draw.line(self.screen, (120, 120, 120), owner_pos, pos, 2)
            fill = (220, 70, 70) if orb.mode == OrbMode.SHOT else (150, 150, 150)
            pygame.draw.circle(self.screen, fill, pos, radius)

        for p in world.players:
            pos = (int(p.x - cam_x), int(p.y - cam_y))
            radius = int(p.radius)
            if p.id == local_id:
                pygame.draw.circle(self.screen, (255, 255, 255), pos, radius + 2)
            pygame.draw.circle(self.screen, player_color(p.id), pos, radius)
            label = p.name or f"Player {p.id}"
            text = self.font.render(f"{label} ({int(p.score)})", True,
                                    (220, 220, 220))
            self.screen.blit(text, (pos[0] - text.get_width() // 2,
                                    pos[1] - radius - 18))

        self._draw_joystick(sample, anchor, max_radius)
        self._draw_eliminated(world)
        self._draw_hud(metrics)

        pygame.display.flip()
        self.clock.tick(RENDER_FPS)

    def _draw_joystick(self, sample: PointerSample, anchor: tuple,
                       max_radius: float):
        """Anchor ring plus a line to the pointer, capped at max radius."""
        cx, cy = anchor[0] * self.width, anchor[1] * self.height
        pygame.draw.circle(self.screen, (90, 90, 90), (int(cx), int(cy)), 50, 1)
        if sample is None or sample.gesture == Gesture.NONE:
            return
        dx = sample.x - anchor[0]
        dy = sample.y - anchor[1]
        dist = (dx * dx + dy * dy) ** 0.5
        if dist > max_radius:
            dx *= max_radius / dist
            dy *= max_radius / dist
        end = (int(cx + dx * self.width), int(cy + dy * self.height))
        pygame.draw.line(self.screen, (0, 188, 212), (int(cx), int(cy)), end, 3)
        pygame.draw.circle(self.screen, (255, 255, 255),
                           (int(sample.x * self.width),
                            int(sample.y * self.height)), 15, 1)

    def _draw_eliminated(self, world: WorldState):
        if not world.eliminated:
            return
        x = self.width - 220
        y = 10
        title = self.font.render("Eliminated", True, (255, 120, 120))
        self.screen.blit(title, (x, y))
        for entry in world.eliminated:
            y += 18
            text = self.font.render(
                f"{entry.name or entry.id}: {int(entry.score)}", True,
                (180, 180, 180))
            self.screen.blit(text, (x, y))

    def _draw_hud(self, metrics: dict):
        """Draw heads-up display with network metrics."""
        panel_h = 20 + len(metrics) * 18
        panel = pygame.Surface((220, panel_h))
        panel.set_alpha(180)
        panel.fill((0, 0, 0))
        self.screen.blit(panel, (5, 5))

        y = 10
        title = self.font.render("Network Stats", True, (150, 255, 150))
        self.screen.blit(title, (10, y))
        y += 20

        for key, val in metrics.items():
            text = self.font.render(f"{key}: {val}", True, (200, 200, 200))
            self.screen.blit(text, (10, y))
            y += 18

    def sample_pointer(self) -> PointerSample:
        """
        Read the mouse as a pointer sample.
        Left button = fist (shoot), right button = pinch (boost).
        """
        if self.headless:
            return PointerSample(0.5, 0.5, Gesture.OPEN)

        mx, my = pygame.mouse.get_pos()
        left, _middle, right = pygame.mouse.get_pressed()
        gesture = Gesture.OPEN
        if left:
            gesture = Gesture.CLOSED
        elif right:
            gesture = Gesture.PINCH
        return PointerSample(mx / self.width, my / self.height, gesture)

    def check_quit(self) -> bool:
        """Process window events; True if the user wants to quit."""
        if self.headless:
            return False

        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                return True
            if event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    return True
                if event.key == pygame.K_c:
                    self.recenter_requested = True
                elif event.key == pygame.K_RETURN:
                    self.rejoin_requested = True
        return False

    def close(self):
        if not self.headless:
            pygame.quit()
