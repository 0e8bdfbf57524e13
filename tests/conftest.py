from datetime import datetime

import pytest

from sire.models import NormalizedRecord, StormRecord


def make_raw(row_id=0, event_type="TORNADO", begin="2000-06-01", fatalities=0, injuries=0,
             prop=0.0, prop_exp=None, crop=0.0, crop_exp=None):
    return StormRecord(
        row_id=row_id,
        event_type=event_type,
        begin_date=datetime.fromisoformat(begin) if begin else None,
        fatalities=fatalities,
        injuries=injuries,
        property_damage_value=prop,
        property_damage_scale=prop_exp,
        crop_damage_value=crop,
        crop_damage_scale=crop_exp,
    )


def make_rec(event_type="tornado", begin="2000-06-01", fatalities=0, injuries=0,
             property_damage=0.0, crop_damage=0.0, row_id=0):
    return NormalizedRecord(
        row_id=row_id,
        event_type=event_type,
        begin_date=datetime.fromisoformat(begin) if begin else None,
        fatalities=fatalities,
        injuries=injuries,
        property_damage=property_damage,
        crop_damage=crop_damage,
    )


@pytest.fixture
def synthetic_records():
    """heat/tornado/flood scenario, all inside the default window."""
    return [
        make_rec("heat", fatalities=100, row_id=0),
        make_rec("tornado", fatalities=50, injuries=200, row_id=1),
        make_rec("flood", fatalities=10, row_id=2),
    ]


@pytest.fixture
def storm_csv(tmp_path):
    """Small NOAA-shaped CSV with the raw column names."""
    path = tmp_path / "StormData.csv"
    path.write_text(
        '"STATE__","BGN_DATE","EVTYPE","FATALITIES","INJURIES","PROPDMG","PROPDMGEXP","CROPDMG","CROPDMGEXP"\n'
        '1,"4/18/1950 0:00:00","TORNADO",0,15,25,"K",0,""\n'
        '1,"1/5/1997 0:00:00","EXCESSIVE HEAT",40,100,0,"",0,""\n'
        '1,"7/12/2001 0:00:00","Flash Flood",3,0,2.5,"B",10,"M"\n'
        '1,"8/29/2005 0:00:00","HURRICANE",10,5,5,"B",1,"B"\n'
        '1,"not a date","HAIL",0,0,1,"K",0,""\n'
        '1,"3/3/2003 0:00:00","TSTM WIND",1,20,50,"k",0,"?"\n',
        encoding="utf-8",
    )
    return path
