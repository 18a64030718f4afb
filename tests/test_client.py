import base64
import unittest
import warnings
from unittest import mock

import requests

import msk_harvest
from msk_harvest.client import OAIClient
from msk_harvest.config import EndpointConfig
from msk_harvest.exceptions import (
    BadResumptionTokenError,
    NoRecordsMatchError,
    OaiProtocolError,
    ProtocolError,
    TransportError,
)
from tests.helpers import (
    dc_record,
    lido_record,
    list_records_xml,
    make_response,
    oai_error_xml,
    pages_for,
    query_params,
)

def serve(bodies, status=200):
    """Fake Session.send answering with bodies in order, recording requests."""
    sent = []

    def send(prepared, **kwargs):
        sent.append(prepared)
        return make_response(bodies[len(sent) - 1], status=status, url=prepared.url)

    return sent, send

class TestPagination(unittest.TestCase):
    def setUp(self):
        self.session = requests.Session()
        self.config = EndpointConfig('https://example.org/oai', set_spec='2011')

    def tearDown(self):
        self.session.close()

    def test_follows_resumption_tokens_until_exhausted(self):
        sent, send = serve(pages_for([50, 13]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            client = OAIClient(self.config, session=self.session)
            records = list(client.list_records())

        self.assertEqual(len(records), 63)
        self.assertEqual([r['_id'] for r in records], [f'oai:msk.be:{n}' for n in range(1, 64)])
        self.assertEqual(len(sent), 2)

    def test_first_request_carries_filters(self):
        config = EndpointConfig(
            'https://example.org/oai',
            set_spec='2011',
            from_date='2017-01-01',
            until_date='2017-12-31',
        )
        sent, send = serve(pages_for([2]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            list(OAIClient(config, session=self.session).list_records())

        self.assertEqual(query_params(sent[0].url), {
            'verb': 'ListRecords',
            'metadataPrefix': 'oai_lido',
            'set': '2011',
            'from': '2017-01-01',
            'until': '2017-12-31',
        })

    def test_resumption_request_carries_only_the_token(self):
        sent, send = serve(pages_for([3, 3, 1]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            list(OAIClient(self.config, session=self.session).list_records())

        self.assertEqual(len(sent), 3)
        self.assertEqual(query_params(sent[1].url), {'verb': 'ListRecords', 'resumptionToken': 'token-1'})
        self.assertEqual(query_params(sent[2].url), {'verb': 'ListRecords', 'resumptionToken': 'token-2'})

    def test_record_count_matches_complete_list_size(self):
        sent, send = serve(pages_for([10, 10, 5]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            client = OAIClient(self.config, session=self.session)
            pages = list(client.iter_pages())

        self.assertEqual(sum(len(p) for p in pages), pages[0].complete_list_size)
        self.assertFalse(pages[-1].has_more)

    def test_pages_are_fetched_on_demand(self):
        sent, send = serve(pages_for([2, 2]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            records = OAIClient(self.config, session=self.session).list_records()
            self.assertEqual(len(sent), 0)
            next(records)
            next(records)
            self.assertEqual(len(sent), 1)
            next(records)
            self.assertEqual(len(sent), 2)

    def test_basic_auth_on_every_request(self):
        config = EndpointConfig('https://example.org/oai', username='user', password='secret')
        sent, send = serve(pages_for([1, 1, 1]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            list(OAIClient(config, session=self.session).list_records())

        expected = 'Basic ' + base64.b64encode(b'user:secret').decode('ascii')
        self.assertEqual(len(sent), 3)
        for prepared in sent:
            self.assertEqual(prepared.headers['Authorization'], expected)

    def test_caller_session_is_left_alone(self):
        config = EndpointConfig('https://example.org/oai', username='user', password='secret')
        session = mock.MagicMock(auth=None)
        session.get.return_value = make_response(list_records_xml([lido_record(1)]))

        with OAIClient(config, session=session) as client:
            list(client.list_records())

        self.assertIsNone(session.auth)
        self.assertEqual(session.get.call_args[1]['auth'], ('user', 'secret'))
        session.close.assert_not_called()

    def test_no_auth_header_without_credentials(self):
        sent, send = serve(pages_for([1]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            list(OAIClient(self.config, session=self.session).list_records())
        self.assertNotIn('Authorization', sent[0].headers)

    def test_post_sends_form_body(self):
        config = EndpointConfig('https://example.org/oai', http_method='POST')
        sent, send = serve(pages_for([1]))
        with mock.patch.object(self.session, 'send', side_effect=send):
            list(OAIClient(config, session=self.session).list_records())
        self.assertEqual(sent[0].method, 'POST')
        self.assertIn('verb=ListRecords', sent[0].body)

    def test_deleted_records_keep_envelope_only(self):
        body = list_records_xml([lido_record(1), lido_record(2, deleted=True)])
        sent, send = serve([body])
        with mock.patch.object(self.session, 'send', side_effect=send):
            records = list(OAIClient(self.config, session=self.session).list_records())

        self.assertEqual(records[1], {
            '_id': 'oai:msk.be:2',
            '_datestamp': '2017-05-03',
            '_setSpec': ['2011'],
            '_status': 'deleted',
        })
        self.assertEqual(records[0]['lidoRecID'], ['MSK-1'])

    def test_handler_resolved_from_prefix(self):
        config = EndpointConfig('https://example.org/oai', metadata_prefix='oai_dc')
        body = list_records_xml([dc_record('oai:x:1', 'A title', ['Ensor, James'])])
        sent, send = serve([body])
        with mock.patch.object(self.session, 'send', side_effect=send):
            client = OAIClient(config, session=self.session)
            records = list(client.list_records())

        self.assertEqual(client.handler.name, 'oai_dc')
        self.assertEqual(records[0]['title'], ['A title'])
        self.assertEqual(records[0]['creator'], ['Ensor, James'])

class TestSinglePage(unittest.TestCase):
    def setUp(self):
        self.session = mock.MagicMock()
        self.client = OAIClient(EndpointConfig('https://example.org/oai'), session=self.session)

    def test_token_overrides_filters_with_warning(self):
        self.session.get.return_value = make_response(list_records_xml([lido_record(1)]))
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter('always')
            page = self.client.list_records_page(resumption_token='abc', set_spec='2011')

        self.assertEqual(len(page), 1)
        self.assertTrue(any(issubclass(w.category, UserWarning) for w in caught))
        params = self.session.get.call_args[1]['params']
        self.assertEqual(params, {'verb': 'ListRecords', 'resumptionToken': 'abc'})

    def test_timeout_is_passed_to_transport(self):
        self.session.get.return_value = make_response(list_records_xml([]))
        self.client.list_records_page()
        self.assertEqual(self.session.get.call_args[1]['timeout'], 30)

class TestErrors(unittest.TestCase):
    def setUp(self):
        self.session = mock.MagicMock()
        self.client = OAIClient(EndpointConfig('https://example.org/oai'), session=self.session)

    def test_malformed_xml_raises_protocol_error(self):
        self.session.get.return_value = make_response('<OAI-PMH><ListRecords>')
        with self.assertRaises(ProtocolError) as ctx:
            list(self.client.list_records())
        self.assertEqual(ctx.exception.url, 'https://example.org/oai')

    def test_oai_error_element_raises_with_code(self):
        self.session.get.side_effect = [
            make_response(pages_for([2, 2])[0]),
            make_response(oai_error_xml('badResumptionToken', 'Token expired')),
        ]
        records = self.client.list_records()
        next(records)
        next(records)
        with self.assertRaises(BadResumptionTokenError) as ctx:
            next(records)
        self.assertEqual(ctx.exception.code, 'badResumptionToken')
        self.assertIsInstance(ctx.exception, OaiProtocolError)

    def test_unknown_oai_error_code(self):
        self.session.get.return_value = make_response(oai_error_xml('somethingElse', 'odd'))
        with self.assertRaises(OaiProtocolError) as ctx:
            list(self.client.list_records())
        self.assertEqual(ctx.exception.code, 'somethingElse')

    def test_no_records_match_raises_by_default(self):
        self.session.get.return_value = make_response(oai_error_xml('noRecordsMatch'))
        with self.assertRaises(NoRecordsMatchError):
            list(self.client.list_records())

    def test_no_records_match_can_mean_empty(self):
        self.session.get.return_value = make_response(oai_error_xml('noRecordsMatch'))
        self.assertEqual(list(self.client.list_records(ignore_no_records=True)), [])

    def test_connection_failure_raises_transport_error(self):
        self.session.get.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(TransportError) as ctx:
            list(self.client.list_records())
        self.assertEqual(ctx.exception.url, 'https://example.org/oai')
        self.assertIsNone(ctx.exception.status)

    def test_timeout_is_not_retried(self):
        self.session.get.side_effect = requests.Timeout('slow')
        with self.assertRaises(TransportError):
            list(self.client.list_records())
        self.assertEqual(self.session.get.call_count, 1)

    def test_http_error_status(self):
        self.session.get.return_value = make_response('oops', status=503)
        with self.assertRaises(TransportError) as ctx:
            list(self.client.list_records())
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(self.session.get.call_count, 1)


class TestHarvestFunction(unittest.TestCase):
    @mock.patch('msk_harvest.client.requests.Session')
    def test_harvest_yields_records_and_closes(self, session_class):
        session = session_class.return_value
        session.get.side_effect = [make_response(body) for body in pages_for([2, 1])]

        records = list(msk_harvest.harvest('https://example.org/oai', set_spec='2011', handler='raw'))

        self.assertEqual([r['_id'] for r in records], ['oai:msk.be:1', 'oai:msk.be:2', 'oai:msk.be:3'])
        self.assertIn('_metadata', records[0])
        self.assertEqual(session.get.call_args_list[0][1]['params']['set'], '2011')
        session.close.assert_called_once_with()

if __name__ == '__main__':
    unittest.main()
