from mpiga.topology import *
from mpiga import geometry
from mpiga.errors import TopologyError

import pytest

def test_boxside():
    s = BoxSide.parse('east', 2)
    assert s == BoxSide(0, 1)
    assert s.index == 1 and s.direction == 0 and not s.is_low
    assert s.opposite() == BoxSide(0, 0)
    assert BoxSide.parse('top', 2) == BoxSide(1, 1)
    assert BoxSide.parse(4, 3) == BoxSide(2, 0)
    assert BoxSide.parse(((1, 0),), 2).name == 'south'
    assert [s.name for s in BoxSide.all(2)] == ['west', 'east', 'south', 'north']

def test_boxside_invalid():
    with pytest.raises(TopologyError):
        BoxSide.parse('nowhere', 2)
    with pytest.raises(TopologyError):
        BoxSide.parse('front', 2)
    with pytest.raises(TopologyError):
        BoxSide(0, 2)

def _two_boxes():
    T = BoxTopology(2, 2)
    bi = T.add_interface(0, 'east', 1, 'west')
    T.add_auto_boundaries()
    return T, bi

def test_consistency():
    T, bi = _two_boxes()
    assert T.check_consistency()
    assert len(T.interfaces) == 1
    assert len(T.boundaries) == 6
    assert T.is_interface(PatchSide(0, BoxSide(0, 1)))
    assert T.is_boundary(PatchSide(1, BoxSide(0, 1)))
    assert T.is_connected()
    assert sorted(T.patch_graph().edges()) == [(0, 1)]

def test_inconsistent():
    T = BoxTopology(2, 2)
    T.add_interface(0, 'east', 1, 'west')
    with pytest.raises(TopologyError):
        T.check_consistency()           # boundary sides missing
    with pytest.raises(TopologyError):
        T.add_interface(0, 'east', 1, 'south')
    with pytest.raises(TopologyError):
        T.add_boundary(2, 'west')

def test_interface_orientation():
    T = BoxTopology(2, 2)
    bi = T.add_interface(0, 'east', 1, 'west')
    assert bi.dir_map == (0, 1)
    assert bi.dir_orientation == (True, True)
    bi = BoxTopology(2, 2).add_interface(0, 'east', 1, 'east', flip=[True])
    assert bi.dir_orientation == (False, False)
    bi = BoxTopology(2, 2).add_interface(0, 'north', 1, 'west')
    assert bi.dir_map == (1, 0)

def test_flip_roundtrip():
    T = BoxTopology(3, 2)
    bi = T.add_interface(0, 'back', 1, 'west', dir_map=[1, 2, 0], flip=[True, False])
    assert bi.inverse().inverse() == bi
    inv = T.find_interface(PatchSide(1, BoxSide(0, 0)))
    assert inv == bi.inverse()
    assert inv.first == bi.second

def test_map_points():
    T = BoxTopology(2, 2)
    bi = T.add_interface(0, 'east', 1, 'west', flip=[True])
    x = np.array([[1.0, 0.25], [1.0, 1.0]])
    y = bi.map_points(x, ((0, 1), (0, 1)), ((0, 2), (0, 1)))
    assert np.allclose(y, [[0.0, 0.75], [0.0, 0.0]])

def test_detect_interfaces():
    G1 = geometry.unit_square()
    G2 = geometry.unit_square().translate((1.0, 0.0))
    G3 = geometry.unit_square().translate((0.0, 1.0))
    T = BoxTopology.from_geometries([G1, G2, G3])
    assert len(T.interfaces) == 2
    assert T.check_consistency()
    bi = T.find_interface(PatchSide(0, BoxSide(0, 1)))
    assert bi.second == PatchSide(1, BoxSide(0, 0))
    assert bi.dir_orientation == (True, True)

def test_copy():
    T, _ = _two_boxes()
    T2 = T.copy()
    T2.add_box()
    assert T.num_boxes == 2 and T2.num_boxes == 3
