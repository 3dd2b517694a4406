"""Shared fixtures: capabilities documents and HTTP fakes."""

from typing import Optional, Union

import httpx
import pytest

BB_WFS_200 = """<?xml version="1.0" encoding="UTF-8"?>
<wfs:WFS_Capabilities version="2.0.0"
    xmlns:wfs="http://www.opengis.net/wfs/2.0"
    xmlns:ows="http://www.opengis.net/ows/1.1"
    xmlns:xlink="http://www.w3.org/1999/xlink"
    xmlns:inspire_common="http://inspire.ec.europa.eu/schemas/common/1.0"
    xmlns:inspire_dls="http://inspire.ec.europa.eu/schemas/inspire_dls/1.0"
    xmlns:cp="http://inspire.ec.europa.eu/schemas/cp/4.0">
  <ows:ServiceIdentification>
    <ows:Title>INSPIRE-WFS Flurstücke/Grundstücke ALKIS BB</ows:Title>
    <ows:Abstract>Flurstücke des Landes Brandenburg nach dem INSPIRE-Datenmodell Cadastral Parcels</ows:Abstract>
    <ows:Keywords>
      <ows:Keyword>INSPIRE</ows:Keyword>
      <ows:Keyword>Flurstück</ows:Keyword>
    </ows:Keywords>
    <ows:ServiceType>WFS</ows:ServiceType>
    <ows:ServiceTypeVersion>2.0.0</ows:ServiceTypeVersion>
  </ows:ServiceIdentification>
  <ows:ServiceProvider>
    <ows:ProviderName>Landesvermessung und Geobasisinformation Brandenburg</ows:ProviderName>
    <ows:ProviderSite xlink:href="https://geobasis-bb.de"/>
  </ows:ServiceProvider>
  <ows:OperationsMetadata>
    <ows:Operation name="GetCapabilities"/>
    <ows:Operation name="GetFeature">
      <ows:Parameter name="outputFormat">
        <ows:AllowedValues>
          <ows:Value>application/gml+xml; version=3.2</ows:Value>
          <ows:Value>text/xml; subtype=gml/3.2.1</ows:Value>
        </ows:AllowedValues>
      </ows:Parameter>
    </ows:Operation>
  </ows:OperationsMetadata>
  <wfs:FeatureTypeList>
    <wfs:FeatureType>
      <wfs:Name>cp:CadastralParcel</wfs:Name>
      <wfs:Title>Flurstück</wfs:Title>
      <wfs:Abstract>Flurstücke nach INSPIRE</wfs:Abstract>
      <wfs:DefaultCRS>urn:ogc:def:crs:EPSG::25833</wfs:DefaultCRS>
      <wfs:OtherCRS>urn:ogc:def:crs:EPSG::4258</wfs:OtherCRS>
      <wfs:OtherCRS>urn:ogc:def:crs:EPSG::4326</wfs:OtherCRS>
      <ows:WGS84BoundingBox>
        <ows:LowerCorner>11.26 51.36</ows:LowerCorner>
        <ows:UpperCorner>14.77 53.56</ows:UpperCorner>
      </ows:WGS84BoundingBox>
    </wfs:FeatureType>
    <wfs:FeatureType>
      <wfs:Name>cp:CadastralZoning</wfs:Name>
      <wfs:Title>Gemarkung</wfs:Title>
      <wfs:DefaultCRS>urn:ogc:def:crs:EPSG::25833</wfs:DefaultCRS>
      <ows:WGS84BoundingBox>
        <ows:LowerCorner>11.2 51.3</ows:LowerCorner>
        <ows:UpperCorner>14.8 53.6</ows:UpperCorner>
      </ows:WGS84BoundingBox>
    </wfs:FeatureType>
  </wfs:FeatureTypeList>
</wfs:WFS_Capabilities>
"""

BERLIN_WFS_110 = """<?xml version="1.0" encoding="UTF-8"?>
<wfs:WFS_Capabilities version="1.1.0"
    xmlns:wfs="http://www.opengis.net/wfs"
    xmlns:ows="http://www.opengis.net/ows"
    xmlns:xlink="http://www.w3.org/1999/xlink">
  <ows:ServiceIdentification>
    <ows:Title>ALKIS Berlin Flurstücke</ows:Title>
    <ows:Abstract>Flurstücke und Gebäude aus dem ALKIS Berlin</ows:Abstract>
    <ows:ServiceType>WFS</ows:ServiceType>
    <ows:ServiceTypeVersion>1.1.0</ows:ServiceTypeVersion>
  </ows:ServiceIdentification>
  <ows:ServiceProvider>
    <ows:ProviderName>Senatsverwaltung für Stadtentwicklung Berlin</ows:ProviderName>
  </ows:ServiceProvider>
  <ows:OperationsMetadata>
    <ows:Operation name="GetFeature">
      <ows:Parameter name="outputFormat">
        <ows:Value>text/xml; subtype=gml/3.1.1</ows:Value>
        <ows:Value>application/json</ows:Value>
      </ows:Parameter>
    </ows:Operation>
  </ows:OperationsMetadata>
  <wfs:FeatureTypeList>
    <wfs:FeatureType>
      <wfs:Name>ALKIS_Flurstueck</wfs:Name>
      <wfs:Title>Flurstücke Berlin</wfs:Title>
      <wfs:DefaultSRS>EPSG:25833</wfs:DefaultSRS>
      <wfs:OtherSRS>EPSG:4326</wfs:OtherSRS>
      <ows:WGS84BoundingBox>
        <ows:LowerCorner>13.08 52.33</ows:LowerCorner>
        <ows:UpperCorner>13.76 52.68</ows:UpperCorner>
      </ows:WGS84BoundingBox>
    </wfs:FeatureType>
    <wfs:FeatureType>
      <wfs:Name>ALKIS_Gebaeude</wfs:Name>
      <wfs:Title>Gebäude Berlin</wfs:Title>
      <ows:Keywords>
        <ows:Keyword>Gebäude</ows:Keyword>
        <ows:Keyword>ALKIS</ows:Keyword>
      </ows:Keywords>
      <wfs:DefaultSRS>EPSG:25833</wfs:DefaultSRS>
      <ows:WGS84BoundingBox>
        <ows:LowerCorner>13.09 52.34</ows:LowerCorner>
        <ows:UpperCorner>13.75 52.67</ows:UpperCorner>
      </ows:WGS84BoundingBox>
    </wfs:FeatureType>
  </wfs:FeatureTypeList>
</wfs:WFS_Capabilities>
"""

ST_WFS_100 = """<?xml version="1.0" encoding="UTF-8"?>
<WFS_Capabilities version="1.0.0" xmlns="http://www.opengis.net/wfs">
  <Service>
    <Name>WFS</Name>
    <Title>Gewässernetz Sachsen-Anhalt</Title>
    <Abstract>Fließgewässer und Stillgewässer</Abstract>
    <Keywords>Wasser, Gewässer</Keywords>
    <OnlineResource>https://www.geodatenportal.sachsen-anhalt.de</OnlineResource>
  </Service>
  <Capability>
    <Request>
      <GetFeature>
        <ResultFormat><GML2/><GEOJSON/></ResultFormat>
      </GetFeature>
    </Request>
  </Capability>
  <FeatureTypeList>
    <FeatureType>
      <Name>gewaesser_linien</Name>
      <Title>Fließgewässer</Title>
      <SRS>EPSG:25832</SRS>
      <LatLongBoundingBox minx="10.5" miny="50.9" maxx="13.2" maxy="53.0"/>
    </FeatureType>
    <FeatureType name="stillgewaesser">
      <Title>Stillgewässer</Title>
      <SRS>EPSG:25832</SRS>
    </FeatureType>
    <FeatureType>
      <TypeName>hy:Watercourse</TypeName>
      <Title>Watercourse</Title>
    </FeatureType>
    <FeatureType>
      <Title>Ohne Namen</Title>
    </FeatureType>
  </FeatureTypeList>
</WFS_Capabilities>
"""

EXCEPTION_REPORT = """<?xml version="1.0" encoding="UTF-8"?>
<ows:ExceptionReport xmlns:ows="http://www.opengis.net/ows/1.1" version="2.0.0">
  <ows:Exception exceptionCode="InvalidParameterValue" locator="typeNames">
    <ows:ExceptionText>Feature type cp:Unknown unknown</ows:ExceptionText>
  </ows:Exception>
</ows:ExceptionReport>
"""

EMPTY_COLLECTION = """<?xml version="1.0" encoding="UTF-8"?>
<wfs:FeatureCollection xmlns:wfs="http://www.opengis.net/wfs/2.0"
    numberMatched="0" numberReturned="0" timeStamp="2025-01-01T00:00:00Z"/>
"""

FEATURE_COLLECTION = """<?xml version="1.0" encoding="UTF-8"?>
<wfs:FeatureCollection xmlns:wfs="http://www.opengis.net/wfs/2.0"
    xmlns:gml="http://www.opengis.net/gml/3.2"
    xmlns:cp="http://inspire.ec.europa.eu/schemas/cp/4.0" numberReturned="2">
  <wfs:member><cp:CadastralParcel gml:id="p1"/></wfs:member>
  <wfs:member><cp:CadastralParcel gml:id="p2"/></wfs:member>
</wfs:FeatureCollection>
"""


def stream_response(
    status_code: int = 200,
    body: Union[str, bytes] = b"",
    headers: Optional[dict[str, str]] = None,
) -> httpx.Response:
    """Mock response with an unread body, like a real server answer."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return httpx.Response(status_code, headers=headers or {}, stream=httpx.ByteStream(body))


def xml_response(text: str, status_code: int = 200, **headers) -> httpx.Response:
    return stream_response(
        status_code, text, {"Content-Type": "text/xml; charset=utf-8", **headers}
    )


@pytest.fixture
def bb_capabilities() -> str:
    return BB_WFS_200


@pytest.fixture
def berlin_capabilities() -> str:
    return BERLIN_WFS_110


@pytest.fixture
def wfs100_capabilities() -> str:
    return ST_WFS_100
