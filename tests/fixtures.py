SQUARE = {
    "type": "Polygon",
    "coordinates": [[[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0], [0.0, 0.0]]],
}

OTHER_SQUARE = {
    "type": "Polygon",
    "coordinates": [[[2.0, 2.0], [3.0, 2.0], [3.0, 3.0], [2.0, 3.0], [2.0, 2.0]]],
}

SQUARE_WITH_HOLE = {
    "type": "Polygon",
    "coordinates": [
        [[0.0, 0.0], [10.0, 0.0], [10.0, 10.0], [0.0, 10.0], [0.0, 0.0]],
        [[2.0, 2.0], [2.0, 4.0], [4.0, 4.0], [4.0, 2.0], [2.0, 2.0]],
    ],
}

MONACO = {
    "type": "MultiPolygon",
    "coordinates": [
        [
            [
                [7.4091, 43.7247],
                [7.4396, 43.7496],
                [7.4345, 43.7617],
                [7.4091, 43.7247],
            ]
        ]
    ],
}

FEATURE_COLLECTION = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "properties": {"name": "first"}, "geometry": SQUARE},
        {"type": "Feature", "properties": {"name": "second"}, "geometry": OTHER_SQUARE},
    ],
}

FEATURE = {"type": "Feature", "properties": {"name": "square"}, "geometry": SQUARE}

ESRI_POLYGON = {
    "rings": [
        [[0.0, 0.0], [0.0, 10.0], [10.0, 10.0], [10.0, 0.0], [0.0, 0.0]],
        [[2.0, 2.0], [4.0, 2.0], [4.0, 4.0], [2.0, 4.0], [2.0, 2.0]],
    ],
    "spatialReference": {"wkid": 4326},
}
