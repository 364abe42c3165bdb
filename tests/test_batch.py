from engine.batch import Beam, PrimitiveBatch, Sphere


def test_equality_ignores_insertion_order():
    a = PrimitiveBatch()
    a.add_beam((0, 0, 0), (0, 0, 10), 2.0)
    a.add_sphere((5, 5, 5), 1.0)

    b = PrimitiveBatch()
    b.add_sphere((5, 5, 5), 1.0)
    b.add_beam((0, 0, 0), (0, 0, 10), 2.0)

    assert a == b
    assert len(a) == 2


def test_multiset_counts_duplicates():
    batch = PrimitiveBatch()
    for _ in range(3):
        batch.add_sphere((0, 0, 0), 1.0)
    assert len(batch) == 3
    assert batch.distinct() == [Sphere((0.0, 0.0, 0.0), 1.0)]


def test_beam_defaults_to_constant_radius():
    batch = PrimitiveBatch()
    batch.add_beam([0, 0, 0], [1, 2, 3], 4)
    (beam,) = list(batch)
    assert beam == Beam((0.0, 0.0, 0.0), (1.0, 2.0, 3.0), 4.0, 4.0)


def test_extend_and_clear():
    a = PrimitiveBatch([Sphere((0.0, 0.0, 0.0), 1.0)])
    b = PrimitiveBatch([Sphere((1.0, 0.0, 0.0), 1.0)])
    a.extend(b)
    assert len(a) == 2
    assert len(b) == 1
    a.clear()
    assert len(a) == 0


def test_bounds_cover_every_primitive():
    batch = PrimitiveBatch()
    batch.add_beam((0, 0, 0), (0, 0, 100), 10.0, 5.0)
    batch.add_sphere((50, 0, 0), 20.0)
    lo, hi = batch.bounds()
    assert lo == (-10.0, -20.0, -20.0)
    assert hi == (70.0, 20.0, 110.0)
