from __future__ import annotations

from pathlib import Path

import pytest

CATALOG_CSV = """dataset_unique_identifier,organization,organization_type,water_body_type,dataset_name,comments,data_agreement_date,data_acquisition_date,catalog_row_id
SWP_DTS_A001,Valley Streamkeepers,NGO,Stream,Valley creeks,call before visiting,2023-01-10,2023-02-01,1
SWP_DTS_A002,Coastal Research Lab,Academic,Lake,Coastal lakes,,2023-03-05,2023-03-20,2
SWP_DTS_A003,Northern Nation,Indigenous,River,Northern rivers,pending agreement,,2023-04-11,3
"""

PIPELINE_YML = """run:
  workers: 4
  source_timeout_seconds: 60
http:
  connect_timeout: 5
  read_timeout: 5
  max_attempts: 1
catalog:
  reader:
    kind: csv
    path: catalog/dataset_catalog.csv
  key: dataset_unique_identifier
  exclude_columns: [comments, data_agreement_date, data_acquisition_date, catalog_row_id]
output:
  geojson_filename: sites.geojson
  csv_filename: sites.csv
"""

SOURCES_YML = """sources:
  - name: valley_streamkeepers
    reader: {kind: csv, path: valley/sites.csv}
    filters:
      exclude: {name: [Broken Logger]}
    select: {dedupe_on: station}
    site_uid: {field: station, prefix: valley_}
    site_name: name
    dataset_id: SWP_DTS_A001
    coordinates: {encoding: decimal, latitude: lat, longitude: lon}
  - name: coastal_lab
    reader: {kind: csv, path: coastal/sites.csv}
    filters:
      require_numeric: [northing]
    site_uid: site
    site_name: {same_as: site_uid}
    dataset_id: SWP_DTS_A002
    coordinates: {encoding: utm, easting: easting, northing: northing, zone: 9}
  - name: northern_nation
    reader: {kind: text_metadata, path: northern/readme.txt}
    site_uid: {field: label, pattern: "\\\\(([^()]+)\\\\)\\\\s*$"}
    site_name: {field: label, pattern: "^(.*?)\\\\s*\\\\([^()]+\\\\)\\\\s*$"}
    dataset_id: SWP_DTS_A003
    coordinates: {encoding: dms, latitude: metadata, longitude: metadata, force_negative_longitude: true}
  - name: unlisted_partner
    reader: {kind: csv, path: unlisted/sites.csv}
    site_uid: {sequence: true, prefix: unl_}
    site_name: name
    dataset_id: SWP_DTS_A099
    coordinates: {encoding: decimal, latitude: lat, longitude: lon, truncate_chars: 2}
"""

RAW_FILES = {
    "catalog/dataset_catalog.csv": CATALOG_CSV,
    "valley/sites.csv": (
        "station,name,lat,lon,temp_c\n"
        "V1,Upper Valley Creek,49.5001,-117.2002,8.1\n"
        "V1,Upper Valley Creek,49.5001,-117.2002,8.4\n"
        "V2,Lower Valley Creek,49.4101,-117.3102,9.0\n"
        "V3,Broken Logger,49.0,-117.0,0.0\n"
    ),
    "coastal/sites.csv": (
        "site,easting,northing\n"
        "CL-1,500000,5773000\n"
        "CL-2,510000,5780000\n"
        "CL-3,505000,\n"
    ),
    "northern/readme.txt": (
        "Northern Hydrology stations\n"
        "\n"
        "Moose Creek (MOC)\n"
        "Metadata: 53°58'20\"N, 122°39'20\"W, 600 m\n"
        "Bear River (BRV)\n"
        "Metadata: 54°10'00\"N, 123°05'30\"W, 710 m\n"
    ),
    "unlisted/sites.csv": "name,lat,lon\nHidden Pond,50.1234567,-120.1234567\n",
}


def write_fixture_repo(root: Path) -> tuple[Path, Path]:
    config_dir = root / "config"
    data_dir = root / "data"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "pipeline.yml").write_text(PIPELINE_YML, encoding="utf-8")
    (config_dir / "sources.yml").write_text(SOURCES_YML, encoding="utf-8")
    for relative, content in RAW_FILES.items():
        path = data_dir / "raw" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return config_dir, data_dir


@pytest.fixture
def fixture_repo(tmp_path: Path) -> tuple[Path, Path]:
    return write_fixture_repo(tmp_path)
