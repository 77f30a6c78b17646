"""
Unit tests for the EntityManager.

Tests cover:
- Initial spawn counts and placement
- Update pass: births, deaths (with causes), consumed resources
- Dead entities removed only after the whole pass
- Resource respawn countdown, cap and abundance scaling
- Fresh statistics (floors, generations, per-type counts)
- Manual resource placement
- Restore from decoded entities
"""

import numpy as np
import pytest

from ruleweaver.core.config import SimConfig
from ruleweaver.core.entity import Entity, EntityType, Traits, reset_entity_id_counter
from ruleweaver.logging.event_log import EventLog
from ruleweaver.simulation.entity_manager import EntityManager, WorldStatistics
from ruleweaver.simulation.rules import RuleSet


@pytest.fixture(autouse=True)
def reset_ids():
    reset_entity_id_counter()
    yield
    reset_entity_id_counter()


def make_manager(
    herbivores: int = 0,
    carnivores: int = 0,
    traders: int = 0,
    resources: int = 0,
    max_resources: int = 30,
    respawn_interval: int = 30,
) -> EntityManager:
    """Manager with an initialized 400x300 world and the given starting counts."""
    cfg = SimConfig()
    cfg.population.herbivores = herbivores
    cfg.population.carnivores = carnivores
    cfg.population.traders = traders
    cfg.population.resources = resources
    cfg.resources.max_resources = max_resources
    cfg.resources.respawn_interval = respawn_interval
    manager = EntityManager(cfg, np.random.default_rng(3), EventLog())
    manager.initialize_world(400, 300)
    return manager


def place(manager: EntityManager, entity_type: EntityType, x: float, y: float, **traits) -> Entity:
    e = Entity(x, y, entity_type, manager.rng, traits=Traits(**traits))
    manager.world.add_entity(e)
    return e


class TestSpawning:
    def test_initial_counts(self):
        m = make_manager(herbivores=15, carnivores=5, traders=3, resources=20)
        stats = m.get_statistics()
        assert stats.count(EntityType.HERBIVORE) == 15
        assert stats.count(EntityType.CARNIVORE) == 5
        assert stats.count(EntityType.TRADER) == 3
        assert stats.count(EntityType.RESOURCE) == 20
        assert stats.population == 23

    def test_spawn_inside_margin(self):
        m = make_manager(herbivores=50)
        margin = m.config.resources.spawn_margin
        for e in m.entities:
            assert margin <= e.x <= 400 - margin
            assert margin <= e.y <= 300 - margin

    def test_reseed_without_resources(self):
        m = make_manager(herbivores=2, resources=4)
        m.spawn_initial_population(include_resources=False)
        stats = m.get_statistics()
        assert stats.count(EntityType.HERBIVORE) == 4
        assert stats.count(EntityType.RESOURCE) == 4

    def test_spawn_resource_at(self):
        m = make_manager()
        r = m.spawn_resource_at(200, 150)
        assert r is not None and r.is_resource
        assert m.world.contains(r)

    def test_spawn_resource_near_edge_ignored(self):
        m = make_manager()
        assert m.spawn_resource_at(2, 150) is None
        assert m.entities == []

    def test_requires_world(self):
        m = EntityManager(SimConfig(), np.random.default_rng(0))
        with pytest.raises(RuntimeError):
            m.get_statistics()


class TestUpdate:
    def test_starvation_death_counted_and_removed(self):
        m = make_manager(max_resources=0)
        h = place(m, EntityType.HERBIVORE, 100, 100)
        h.energy = 0.1
        report = m.update(m.world, RuleSet())
        assert report.deaths == 1
        assert report.death_causes == {"starvation": 1}
        assert m.world.get_entity(h.id) is None

    def test_consumed_resources_counted(self):
        m = make_manager(max_resources=0)
        place(m, EntityType.HERBIVORE, 100, 100)
        place(m, EntityType.RESOURCE, 101, 100)
        report = m.update(m.world, RuleSet())
        assert report.resources_consumed == 1
        assert report.deaths == 0

    def test_birth_counted_and_newborn_not_updated(self):
        m = make_manager(max_resources=0)
        a = place(m, EntityType.HERBIVORE, 100, 100)
        b = place(m, EntityType.HERBIVORE, 101, 100)
        for e in (a, b):
            e.energy = 150
            e.age = 60
        report = m.update(m.world, RuleSet())
        assert report.births == 1
        newborn = [e for e in m.entities if e.id not in (a.id, b.id)]
        assert len(newborn) == 1
        assert newborn[0].age == 0
        assert newborn[0].generation == 2

    def test_hunted_prey_removed_after_pass(self):
        m = make_manager(max_resources=0)
        c = place(m, EntityType.CARNIVORE, 100, 100, aggression=1.0, size=1.0)
        c.energy = 20
        prey = place(m, EntityType.HERBIVORE, 101, 100, size=0.5, adaptability=0.0)
        report = m.update(m.world, RuleSet())
        assert prey.is_dead
        assert m.world.get_entity(prey.id) is None
        assert report.death_causes.get("hunted") == 1


class TestResourceRespawn:
    def test_first_tick_checks_respawn(self):
        m = make_manager(resources=0)
        report = m.update(m.world, RuleSet())
        assert report.resources_spawned == 5
        assert m.resource_countdown == m.config.resources.respawn_interval

    def test_no_respawn_between_checks(self):
        m = make_manager(resources=0)
        m.update(m.world, RuleSet())
        report = m.update(m.world, RuleSet())
        assert report.resources_spawned == 0

    def test_respawn_every_interval(self):
        m = make_manager(resources=0, respawn_interval=3)
        spawned = [m.update(m.world, RuleSet()).resources_spawned for _ in range(7)]
        assert spawned == [5, 0, 0, 5, 0, 0, 5]

    def test_cap_blocks_respawn(self):
        m = make_manager(resources=10, max_resources=10)
        assert m.update(m.world, RuleSet()).resources_spawned == 0

    def test_abundance_scales_batch(self):
        m = make_manager(resources=0)
        rules = RuleSet(resource_abundance=0.5)
        assert m.update(m.world, rules).resources_spawned == 2


class TestStatistics:
    def test_empty(self):
        stats = make_manager().get_statistics()
        assert stats == WorldStatistics()

    def test_floors_and_generation(self):
        m = make_manager()
        a = place(m, EntityType.HERBIVORE, 100, 100)
        b = place(m, EntityType.TRADER, 150, 100)
        place(m, EntityType.RESOURCE, 200, 100)
        a.energy, b.energy = 10.7, 20.6
        a.age, b.age = 3, 4
        b.generation = 7
        stats = m.get_statistics()
        assert stats.population == 2
        assert stats.total_energy == 31
        assert stats.average_age == 3
        assert stats.generations == 7
        assert stats.count(EntityType.RESOURCE) == 1

    def test_dead_not_counted(self):
        m = make_manager()
        a = place(m, EntityType.HERBIVORE, 100, 100)
        a.die("test")
        assert m.get_statistics().population == 0

    def test_to_dict(self):
        m = make_manager(herbivores=2)
        data = m.get_statistics().to_dict()
        assert data["population"] == 2
        assert data["by_type"]["herbivore"] == 2


class TestRestore:
    def test_restore_replaces_and_reserves_ids(self):
        m = make_manager(herbivores=3)
        rng = np.random.default_rng(0)
        saved = [Entity(50, 50, EntityType.TRADER, rng, entity_id=100)]
        world = m.world
        m.restore(world, saved, resource_countdown=7)
        assert [e.id for e in m.entities] == [100]
        assert m.resource_countdown == 7
        fresh = Entity(0, 0, EntityType.HERBIVORE, rng)
        assert fresh.id > 100
